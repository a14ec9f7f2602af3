import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `records.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def make_registered():
    """Build a `Registered` record with every buffer filled with `fill`."""
    from records.models import OprfSignedPublicKey, Policy, Registered

    def _make(fill: int = 0x01, *, guess_count: int = 0, num_guesses: int = 10) -> Registered:
        def b(n: int) -> bytes:
            return bytes([fill]) * n

        return Registered(
            version=b(16),
            oprf_private_key=b(32),
            oprf_signed_public_key=OprfSignedPublicKey(
                public_key=b(32), verifying_key=b(32), signature=b(64)
            ),
            unlock_key_commitment=b(32),
            unlock_key_tag=b(16),
            encryption_key_scalar_share=b(32),
            encrypted_secret=b(145),
            encrypted_secret_commitment=b(16),
            guess_count=guess_count,
            policy=Policy(num_guesses=num_guesses),
        )

    return _make
