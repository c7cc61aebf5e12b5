from __future__ import annotations

import binascii
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import boto3
from botocore.exceptions import ClientError

from .errors import InvalidSecretError
from .portal import DEFAULT_PORTAL_URL


# Environment variable names
ENV_PORTAL_URL = "TODO_PORTAL_URL"
ENV_PORTAL_API_KEY = "TODO_PORTAL_API_KEY"
ENV_SEED = "TODO_SEED"  # 32 hex chars
ENV_PARAM_PREFIX = "TODO_PARAM_PREFIX"  # SSM prefix; seed read from "<prefix>seed"
ENV_ENCRYPT_AT_REST = "TODO_ENCRYPT_AT_REST"
ENV_TIMEOUT = "TODO_TIMEOUT"

SSM_SEED_NAME = "seed"
_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _load_ssm_params(prefix: str, names: Iterable[str], *, ssm=None) -> Dict[str, Optional[str]]:
    ssm = ssm or boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            # Leave as None if parameter missing or access denied
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


def parse_seed(raw: str) -> bytes:
    """Decode a hex-encoded 16-byte root seed."""
    try:
        seed = binascii.unhexlify(raw.strip())
    except (binascii.Error, ValueError) as ex:
        raise InvalidSecretError("seed is not valid hex") from ex
    if len(seed) != 16:
        raise InvalidSecretError(f"seed must decode to 16 bytes, got {len(seed)}")
    return seed


@dataclass(frozen=True)
class PortalSettings:
    portal_url: str
    seed: bytes
    api_key: Optional[str] = None
    encrypt_at_rest: bool = False
    timeout: float = 15.0

    def __repr__(self) -> str:
        # Never echo the seed
        return (
            f"PortalSettings(portal_url={self.portal_url!r}, api_key={'***' if self.api_key else None}, "
            f"encrypt_at_rest={self.encrypt_at_rest}, timeout={self.timeout})"
        )

    @classmethod
    def from_env(cls, *, ssm=None) -> "PortalSettings":
        """
        Resolve settings from the environment, falling back to SSM for the seed.

        The seed is taken from `TODO_SEED` when set; otherwise `TODO_PARAM_PREFIX`
        must name an SSM prefix holding a `seed` SecureString parameter.
        """
        raw_seed = _getenv(ENV_SEED)
        if raw_seed is None:
            prefix = _getenv(ENV_PARAM_PREFIX)
            if prefix:
                raw_seed = _load_ssm_params(prefix, [SSM_SEED_NAME], ssm=ssm).get(SSM_SEED_NAME)
                raw_seed = _require(raw_seed, f"{prefix}{SSM_SEED_NAME}")
            else:
                raw_seed = _require(raw_seed, f"{ENV_SEED} or {ENV_PARAM_PREFIX}")

        timeout_raw = _getenv(ENV_TIMEOUT, "15")
        try:
            timeout = float(timeout_raw)  # type: ignore[arg-type]
        except ValueError as ex:
            raise RuntimeError(f"{ENV_TIMEOUT} must be a number, got {timeout_raw!r}") from ex

        return cls(
            portal_url=_getenv(ENV_PORTAL_URL, DEFAULT_PORTAL_URL),  # type: ignore[arg-type]
            seed=parse_seed(raw_seed),
            api_key=_getenv(ENV_PORTAL_API_KEY),
            encrypt_at_rest=(_getenv(ENV_ENCRYPT_AT_REST, "") or "").lower() in _TRUTHY,
            timeout=timeout,
        )


__all__ = ["PortalSettings", "parse_seed"]
