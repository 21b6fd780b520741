"""Known-answer tests for the AEAD primitives.

AES-256-GCM: test cases 13 and 14 from McGrew and Viega,
"The Galois/Counter Mode of Operation".
ChaCha20-Poly1305: RFC 8439 §2.8.2.
"""

import pytest

from streamcrypt.cipher import AESGCMCipher, ChaCha20Poly1305Cipher
from streamcrypt.exceptions import AuthenticationError

RFC8439_PLAINTEXT = (
    b"Ladies and Gentlemen of the class of '99: If I could offer you only one tip for the future, "
    b"sunscreen would be it."
)


@pytest.mark.vectors
class TestAESGCMVectors:
    """AES-256-GCM known answers."""

    def test_case_13_empty_plaintext(self) -> None:
        """Zero key, zero IV, empty plaintext: tag only."""
        cipher = AESGCMCipher(bytes(32))
        sealed = cipher.seal(bytes(12), b"", b"")
        assert sealed == bytes.fromhex("530f8afbc74536b9a963b4f1c4cb738b")
        assert cipher.open(bytes(12), b"", sealed) == b""

    def test_case_14_one_block(self) -> None:
        """Zero key, zero IV, one zero block."""
        cipher = AESGCMCipher(bytes(32))
        sealed = cipher.seal(bytes(12), b"", bytes(16))
        assert sealed[:16] == bytes.fromhex("cea7403d4d606b6e074ec5d3baf39d18")
        assert sealed[16:] == bytes.fromhex("d0d1c8a799996bf0265b98b5d48ab919")
        assert cipher.open(bytes(12), b"", sealed) == bytes(16)

    def test_case_14_bad_tag(self) -> None:
        """Corrupting the known tag is rejected."""
        cipher = AESGCMCipher(bytes(32))
        sealed = bytes.fromhex("cea7403d4d606b6e074ec5d3baf39d18" "d0d1c8a799996bf0265b98b5d48ab918")
        with pytest.raises(AuthenticationError):
            cipher.open(bytes(12), b"", sealed)


@pytest.mark.vectors
class TestChaCha20Poly1305Vectors:
    """ChaCha20-Poly1305 known answers."""

    KEY = bytes(range(0x80, 0xA0))
    NONCE = bytes.fromhex("070000004041424344454647")
    AAD = bytes.fromhex("50515253c0c1c2c3c4c5c6c7")
    TAG = bytes.fromhex("1ae10b594f09e26a7e902ecbd0600691")

    def test_rfc8439_tag(self) -> None:
        """Sealing the RFC plaintext produces the RFC tag."""
        cipher = ChaCha20Poly1305Cipher(self.KEY)
        sealed = cipher.seal(self.NONCE, self.AAD, RFC8439_PLAINTEXT)
        assert len(sealed) == len(RFC8439_PLAINTEXT) + 16
        assert sealed[-16:] == self.TAG
        assert cipher.open(self.NONCE, self.AAD, sealed) == RFC8439_PLAINTEXT

    def test_rfc8439_wrong_aad(self) -> None:
        """The RFC ciphertext does not open with different AAD."""
        cipher = ChaCha20Poly1305Cipher(self.KEY)
        sealed = cipher.seal(self.NONCE, self.AAD, RFC8439_PLAINTEXT)
        with pytest.raises(AuthenticationError):
            cipher.open(self.NONCE, self.AAD[:-1], sealed)
