import base64

import pytest

from orderdesk.services.credential_store import (
    ENCRYPTED_POSITION,
    CredentialError,
    CredentialStore,
    derive_key,
)


class TestDeriveKey:
    def test_hex_key_used_directly(self):
        assert derive_key("ab" * 32) == bytes.fromhex("ab" * 32)

    def test_passphrase_is_stretched_to_32_bytes(self):
        key = derive_key("correct horse battery staple")
        assert len(key) == 32
        assert key == derive_key("correct horse battery staple")

    def test_missing_key_raises(self):
        with pytest.raises(CredentialError):
            derive_key("")


class TestCredentialStore:
    def test_decrypts_what_it_encrypted(self, credential_store):
        stored = credential_store.encrypt("EAAG-token")
        assert stored != "EAAG-token"
        assert credential_store.decrypt(stored) == "EAAG-token"

    def test_empty_token_round_trips(self, credential_store):
        stored = credential_store.encrypt("")
        assert len(base64.b64decode(stored)) == ENCRYPTED_POSITION
        assert credential_store.decrypt(stored) == ""

    def test_layout_is_salt_iv_tag_ciphertext(self, credential_store):
        raw = base64.b64decode(credential_store.encrypt("abc"))
        assert len(raw) == ENCRYPTED_POSITION + 3

    def test_each_encryption_is_unique(self, credential_store):
        assert credential_store.encrypt("same") != credential_store.encrypt("same")

    def test_wrong_key_raises(self, credential_store):
        stored = credential_store.encrypt("token")
        with pytest.raises(CredentialError):
            CredentialStore("b" * 64).decrypt(stored)

    def test_corrupted_ciphertext_raises(self, credential_store):
        raw = bytearray(base64.b64decode(credential_store.encrypt("token")))
        raw[-1] ^= 0xFF
        with pytest.raises(CredentialError):
            credential_store.decrypt(base64.b64encode(bytes(raw)).decode())

    def test_not_base64_raises(self, credential_store):
        with pytest.raises(CredentialError):
            credential_store.decrypt("not base64 at all!!")

    def test_truncated_raises(self, credential_store):
        with pytest.raises(CredentialError):
            credential_store.decrypt(base64.b64encode(b"short").decode())

    def test_missing_value_raises(self, credential_store):
        with pytest.raises(CredentialError):
            credential_store.decrypt("")

    def test_no_configured_key_raises_on_use(self):
        with pytest.raises(CredentialError):
            CredentialStore("").decrypt("AAAA")


class TestReveal:
    def test_plaintext_meta_token_passes_through(self, credential_store):
        assert credential_store.reveal("EAAGplain") == "EAAGplain"

    def test_encrypted_value_is_decrypted(self, credential_store):
        assert credential_store.reveal(credential_store.encrypt("tg-token")) == "tg-token"

    def test_empty_raises(self, credential_store):
        with pytest.raises(CredentialError):
            credential_store.reveal(None)
