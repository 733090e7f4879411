"""reCAPTCHA-compatible bot check for login and registration."""

import httpx
from dataclasses import dataclass, field
from typing import List, Optional

from profrate.core.config import settings
from profrate.core.exceptions import ExternalServiceError, HumanVerificationError
from profrate.core.logging_config import logger


@dataclass
class HumanVerificationResult:
    accepted: bool
    score: Optional[float] = None
    error_codes: List[str] = field(default_factory=list)
    transport_error: bool = False


class HumanVerificationGate:
    """
    Checks a client-side CAPTCHA token against the provider's siteverify
    endpoint. Fails closed: an unreachable or misbehaving provider is never
    treated as a pass.
    """

    def __init__(
        self,
        enabled: bool = settings.HUMAN_VERIFICATION_ENABLED,
        secret: str = settings.HUMAN_VERIFICATION_SECRET,
        verify_url: str = settings.HUMAN_VERIFICATION_URL,
        timeout: float = settings.HUMAN_VERIFICATION_TIMEOUT,
        min_score: float = settings.HUMAN_VERIFICATION_MIN_SCORE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.enabled = enabled
        self.secret = secret
        self.verify_url = verify_url
        self.timeout = timeout
        self.min_score = min_score
        # Tests inject httpx.MockTransport here
        self.transport = transport

    async def _siteverify(self, token: str, remote_ip: Optional[str]) -> dict:
        data = {"secret": self.secret, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.verify_url, data=data)
            response.raise_for_status()
            body = response.json()

        if not isinstance(body, dict):
            raise ValueError("siteverify returned a non-object body")
        return body

    async def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> HumanVerificationResult:
        if not self.enabled:
            return HumanVerificationResult(accepted=True)

        if not token:
            return HumanVerificationResult(accepted=False, error_codes=["missing-input-response"])

        try:
            body = await self._siteverify(token, remote_ip)
        except httpx.HTTPStatusError as e:
            logger.error(f"[HumanVerification] siteverify HTTP error: {e.response.status_code}")
            return HumanVerificationResult(accepted=False, transport_error=True)
        except httpx.RequestError as e:
            logger.error(f"[HumanVerification] siteverify request error: {type(e).__name__}: {e}")
            return HumanVerificationResult(accepted=False, transport_error=True)
        except ValueError as e:
            logger.error(f"[HumanVerification] Malformed siteverify response: {e}")
            return HumanVerificationResult(accepted=False, transport_error=True)

        error_codes = list(body.get("error-codes") or [])
        score = body.get("score")
        if score is not None and not isinstance(score, (int, float)):
            logger.error("[HumanVerification] Malformed siteverify score")
            return HumanVerificationResult(accepted=False, transport_error=True)

        if body.get("success") is not True:
            logger.info(f"[HumanVerification] Token rejected: {error_codes}")
            return HumanVerificationResult(accepted=False, score=score, error_codes=error_codes)

        # v3 tokens carry a score; v2 checkbox tokens do not
        if score is not None and score < self.min_score:
            logger.info(f"[HumanVerification] Score {score} below {self.min_score}")
            return HumanVerificationResult(accepted=False, score=score, error_codes=error_codes)

        return HumanVerificationResult(accepted=True, score=score, error_codes=error_codes)

    async def require(self, token: Optional[str], remote_ip: Optional[str] = None) -> HumanVerificationResult:
        """verify() mapped onto the error taxonomy"""
        result = await self.verify(token, remote_ip)
        if result.transport_error:
            raise ExternalServiceError("human_verification")
        if not result.accepted:
            raise HumanVerificationError()
        return result


# Process-wide gate
human_verification_gate = HumanVerificationGate()
