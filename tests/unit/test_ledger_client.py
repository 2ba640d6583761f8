"""
Ledger Client Unit Tests
========================
Drives LedgerClient against a mocked AsyncClient: error wrapping,
confirmation polling, blockhash expiry and the timeout bound.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest


def _resp(value):
    resp = MagicMock()
    resp.value = value
    return resp


def _status(confirmation_status=None, err=None):
    status = MagicMock()
    status.err = err
    status.confirmation_status = confirmation_status
    return status


class _RawTx:
    def __bytes__(self):
        return b"\x01\x02"


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def ledger_client(client):
    from sniper.shared.infrastructure.ledger_client import LedgerClient
    return LedgerClient("http://127.0.0.1:8899", client=client)


@pytest.fixture
def signature():
    from solders.signature import Signature
    return str(Signature.default())


class TestBlockhash:

    @pytest.mark.asyncio
    async def test_latest_blockhash(self, ledger_client, client):
        from solders.hash import Hash

        value = MagicMock()
        value.blockhash = Hash.default()
        value.last_valid_block_height = 1234
        client.get_latest_blockhash.return_value = _resp(value)

        info = await ledger_client.get_latest_blockhash()

        assert info.blockhash == Hash.default()
        assert info.last_valid_block_height == 1234

    @pytest.mark.asyncio
    async def test_remote_text_is_kept(self, ledger_client, client):
        """Client exceptions are wrapped; the raw text still classifies."""
        from sniper.shared.execution.error_classifier import ErrorKind, classify_error
        from sniper.shared.infrastructure.ledger_client import LedgerError

        client.get_latest_blockhash.side_effect = RuntimeError("429 Too Many Requests")

        with pytest.raises(LedgerError) as exc_info:
            await ledger_client.get_latest_blockhash()

        assert "getLatestBlockhash" in str(exc_info.value)
        assert classify_error(exc_info.value).kind is ErrorKind.RATE_LIMITED


class TestSend:

    @pytest.mark.asyncio
    async def test_returns_signature_string(self, ledger_client, client, signature):
        from solders.signature import Signature

        client.send_raw_transaction.return_value = _resp(Signature.default())

        assert await ledger_client.send_transaction(_RawTx()) == signature
        args, kwargs = client.send_raw_transaction.call_args
        assert args[0] == b"\x01\x02"
        assert kwargs["opts"].skip_preflight is False

    @pytest.mark.asyncio
    async def test_simulation_failure_wrapped(self, ledger_client, client):
        from sniper.shared.execution.error_classifier import ErrorKind, classify_error
        from sniper.shared.infrastructure.ledger_client import LedgerError

        client.send_raw_transaction.side_effect = RuntimeError(
            "Transaction simulation failed: Error processing Instruction 2"
        )

        with pytest.raises(LedgerError) as exc_info:
            await ledger_client.send_transaction(_RawTx())

        assert classify_error(exc_info.value).kind is ErrorKind.SIMULATION_FAILED


class TestConfirm:

    @pytest.mark.asyncio
    async def test_polls_until_confirmed(self, ledger_client, client, signature):
        from solders.transaction_status import TransactionConfirmationStatus

        client.get_signature_statuses.side_effect = [
            _resp([None]),
            _resp([_status(TransactionConfirmationStatus.Processed)]),
            _resp([_status(TransactionConfirmationStatus.Confirmed)]),
        ]
        client.get_block_height.return_value = _resp(10)

        await ledger_client.confirm_transaction(signature, 100, timeout=5.0, poll_interval=0.0)

        assert client.get_signature_statuses.await_count == 3

    @pytest.mark.asyncio
    async def test_on_chain_error(self, ledger_client, client, signature):
        from sniper.shared.infrastructure.ledger_client import TransactionFailed
        from solders.transaction_status import TransactionConfirmationStatus

        client.get_signature_statuses.return_value = _resp(
            [_status(TransactionConfirmationStatus.Confirmed, err="InstructionError(0, Custom(1))")]
        )

        with pytest.raises(TransactionFailed) as exc_info:
            await ledger_client.confirm_transaction(signature, timeout=5.0, poll_interval=0.0)

        assert exc_info.value.err == "InstructionError(0, Custom(1))"
        assert signature not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_blockhash_expiry(self, ledger_client, client, signature):
        from sniper.shared.infrastructure.ledger_client import BlockhashExpired

        client.get_signature_statuses.return_value = _resp([None])
        client.get_block_height.return_value = _resp(301429050)

        with pytest.raises(BlockhashExpired) as exc_info:
            await ledger_client.confirm_transaction(signature, 301429000, timeout=5.0, poll_interval=0.0)

        assert exc_info.value.block_height == 301429050
        assert "301429" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout_bound(self, ledger_client, client, signature):
        from sniper.shared.infrastructure.ledger_client import ConfirmationTimeout

        client.get_signature_statuses.return_value = _resp([None])

        with pytest.raises(ConfirmationTimeout) as exc_info:
            await ledger_client.confirm_transaction(signature, None, timeout=0.0, poll_interval=0.0)

        assert exc_info.value.signature == signature
        client.get_block_height.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status_call_failure_wrapped(self, ledger_client, client, signature):
        from sniper.shared.infrastructure.ledger_client import LedgerError

        client.get_signature_statuses.side_effect = ConnectionError("connection reset")

        with pytest.raises(LedgerError, match="getSignatureStatuses failed: connection reset"):
            await ledger_client.confirm_transaction(signature, timeout=5.0, poll_interval=0.0)


class TestAccounts:

    @pytest.mark.asyncio
    async def test_token_balance(self, ledger_client, client):
        from solders.pubkey import Pubkey

        value = MagicMock()
        value.ui_amount_string = "12.5"
        client.get_token_account_balance.return_value = _resp(value)

        assert await ledger_client.get_token_account_balance(str(Pubkey.default())) == 12.5

    @pytest.mark.asyncio
    async def test_close(self, ledger_client, client):
        await ledger_client.close()

        client.close.assert_awaited_once()
