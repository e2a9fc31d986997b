"""Tests for API tokens: issuing, shape checks, expiry and last-use tracking."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from appdeck.auth.api_tokens import (
    _generate_raw_token,
    _generate_token_id,
    create_api_token,
    hash_token,
    is_expired,
    is_well_formed,
    validate_api_token,
)


class TestTokenGeneration:
    def test_token_id_format(self):
        token_id = _generate_token_id()
        assert token_id.startswith("at-")
        assert len(token_id) == len("at-") + 16

    def test_raw_token_is_well_formed(self):
        raw = _generate_raw_token()
        lookup, _, secret = raw.partition(".adk.")
        assert len(lookup) > 5
        assert len(secret) > 20
        assert is_well_formed(raw)

    def test_raw_token_is_unique(self):
        assert _generate_raw_token() != _generate_raw_token()

    @pytest.mark.parametrize("raw", ["", "plain", ".adk.secret", "lookup.adk.", "a.b.c"])
    def test_malformed_tokens(self, raw):
        assert not is_well_formed(raw)


class TestHashToken:
    def test_hash_is_deterministic(self):
        assert hash_token("abc.adk.secret") == hash_token("abc.adk.secret")

    def test_hash_is_hex_sha256(self):
        h = hash_token("test")
        assert len(h) == 64
        assert all(c in "0123456789abcdef" for c in h)


class TestIsExpired:
    def test_zero_ttl_never_expires(self):
        token = MagicMock(created_at=datetime(2020, 1, 1, tzinfo=UTC))
        assert not is_expired(token, datetime.now(UTC), 0)

    def test_past_ttl(self):
        now = datetime.now(UTC)
        token = MagicMock(created_at=now - timedelta(hours=2))
        assert is_expired(token, now, 1)

    def test_within_ttl(self):
        now = datetime.now(UTC)
        token = MagicMock(created_at=now - timedelta(hours=1))
        assert not is_expired(token, now, 24)


class TestCreateAPIToken:
    async def test_stores_hash_of_returned_value(self):
        mock_db = AsyncMock(spec=AsyncSession)

        record, raw_value = await create_api_token(mock_db, "owner-1", description="ci")

        assert record.user_id == "owner-1"
        assert record.description == "ci"
        assert record.id.startswith("at-")
        assert record.token_hash == hash_token(raw_value)
        assert raw_value not in (record.token_hash, record.id)
        mock_db.add.assert_called_once_with(record)
        mock_db.flush.assert_called_once()


class TestValidateAPIToken:
    @pytest.fixture
    def mock_db(self):
        return AsyncMock(spec=AsyncSession)

    def _stored(self, mock_db, created_at, last_used_at=None):
        token = MagicMock()
        token.id = "at-test"
        token.created_at = created_at
        token.last_used_at = last_used_at

        result = MagicMock()
        result.scalar_one_or_none.return_value = token
        mock_db.execute.return_value = result
        return token

    async def test_malformed_token_skips_lookup(self, mock_db):
        assert await validate_api_token(mock_db, "not-a-token") is None
        mock_db.execute.assert_not_called()

    async def test_unknown_token(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = result

        assert await validate_api_token(mock_db, "nope.adk.nope") is None

    @patch("appdeck.auth.api_tokens.settings")
    async def test_valid_token_records_use(self, mock_settings, mock_db):
        mock_settings.auth.api_token_max_ttl_hours = 0
        token = self._stored(mock_db, datetime.now(UTC))

        assert await validate_api_token(mock_db, "abc.adk.secret") is token
        assert token.last_used_at is not None

    @patch("appdeck.auth.api_tokens.settings")
    async def test_rejects_token_past_max_ttl(self, mock_settings, mock_db):
        mock_settings.auth.api_token_max_ttl_hours = 1
        self._stored(mock_db, datetime.now(UTC) - timedelta(hours=2))

        assert await validate_api_token(mock_db, "old.adk.token") is None

    @patch("appdeck.auth.api_tokens.settings")
    async def test_recent_use_not_rewritten(self, mock_settings, mock_db):
        mock_settings.auth.api_token_max_ttl_hours = 0
        now = datetime.now(UTC)
        recent = now - timedelta(seconds=30)
        token = self._stored(mock_db, now, last_used_at=recent)

        await validate_api_token(mock_db, "recent.adk.token")
        assert token.last_used_at == recent

    @patch("appdeck.auth.api_tokens.settings")
    async def test_stale_use_rewritten(self, mock_settings, mock_db):
        mock_settings.auth.api_token_max_ttl_hours = 0
        now = datetime.now(UTC)
        stale = now - timedelta(minutes=5)
        token = self._stored(mock_db, now, last_used_at=stale)

        await validate_api_token(mock_db, "stale.adk.token")
        assert token.last_used_at > stale
