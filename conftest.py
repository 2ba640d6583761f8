# Root conftest to ensure pytest-asyncio is loaded early
import pytest_asyncio.plugin


def pytest_configure(config):
    # The entry point registers the plugin as "asyncio"
    manager = config.pluginmanager
    if manager.is_registered(pytest_asyncio.plugin):
        return
    if not (manager.hasplugin("asyncio") or manager.hasplugin("pytest_asyncio")):
        manager.register(pytest_asyncio.plugin, name="pytest_asyncio")
