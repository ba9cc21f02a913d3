import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from blimp.src.appstore.token_provider import AUDIENCE, TokenProvider
from blimp.src.errors import ConfigError


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def key_dir(tmp_path):
    private_key = ec.generate_private_key(ec.SECP256R1())
    pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    (tmp_path / "AuthKey_KEY123.p8").write_bytes(pem)
    return tmp_path, private_key.public_key()


def test_token_is_es256_signed_for_app_store_connect(key_dir):
    directory, public_key = key_dir
    provider = TokenProvider("KEY123", "ISSUER", directory, clock=FakeClock())

    token = provider.token()

    header = jwt.get_unverified_header(token)
    assert header["kid"] == "KEY123"
    assert header["alg"] == "ES256"
    claims = jwt.decode(
        token,
        public_key,
        algorithms=["ES256"],
        audience=AUDIENCE,
        options={"verify_exp": False},
    )
    assert claims["iss"] == "ISSUER"
    assert claims["exp"] - claims["iat"] == 120


def test_token_is_cached_until_close_to_expiry(key_dir):
    directory, _ = key_dir
    clock = FakeClock()
    provider = TokenProvider("KEY123", "ISSUER", directory, clock=clock)

    first = provider.token()
    clock.now += 100
    assert provider.token() == first

    clock.now += 15
    assert provider.token() != first


def test_missing_credentials_are_reported(tmp_path):
    with pytest.raises(ConfigError, match="credentials"):
        TokenProvider(None, "ISSUER", tmp_path).token()


def test_missing_key_file_is_reported(tmp_path):
    with pytest.raises(ConfigError, match="AuthKey_NOPE.p8"):
        TokenProvider("NOPE", "ISSUER", tmp_path).token()
