from __future__ import annotations

import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta

from loguru import logger

from revision_ai.core.errors import (
    AuthenticationError,
    BackendTimeoutError,
    ProcessingError,
    QuotaExceededError,
    UnexpectedError,
    ValidationError,
)
from revision_ai.core.result import Failure, Result, Success
from revision_ai.services.rate_limit import RateLimiter

DEFAULT_COOLDOWN = timedelta(minutes=1)


@dataclass(frozen=True)
class User:
    id: str
    email: str
    is_email_verified: bool = False


class AuthRepository(ABC):
    """Session collaborator; authentication itself lives elsewhere."""

    @abstractmethod
    async def get_current_user(self) -> Result[User | None]:
        raise NotImplementedError

    @abstractmethod
    async def send_email_verification(self) -> Result[None]:
        raise NotImplementedError


class SendEmailVerificationUseCase:
    """
    Sends a verification email to the signed-in user, at most once per
    cooldown window.

    Order of checks: a user must be signed in, the cooldown must have
    elapsed, and the address must not already be verified. Only a
    successful send consumes the cooldown.
    """

    def __init__(self, repository: AuthRepository, limiter: RateLimiter | None = None) -> None:
        self._repository = repository
        self._limiter = limiter or RateLimiter(cooldown=DEFAULT_COOLDOWN)

    async def __call__(self) -> Result[None]:
        logger.info("Attempting to send email verification")
        try:
            auth = await self._validate_user_authentication()
            if auth.is_failure:
                return auth

            limited = self._check_rate_limit()
            if limited.is_failure:
                return limited

            verified = await self._check_email_verification_status()
            if verified.is_failure:
                return verified

            sent = await self._repository.send_email_verification()
            if sent.is_failure:
                logger.warning(f"Failed to send verification email: {sent.error_or_none}")
                return sent

            self._limiter.stamp()
            logger.info("Email verification request initiated successfully")
            return Success(None)
        except asyncio.TimeoutError as e:
            logger.error(f"Request timed out while sending verification email: {e}")
            return Failure(BackendTimeoutError("Request timed out while sending verification email"))
        except ProcessingError as e:
            return Failure(e)
        except Exception as e:
            logger.error(f"Unexpected error while sending verification email: {e}")
            return Failure(UnexpectedError.wrap(e, "Unexpected error occurred while sending verification email"))

    async def _validate_user_authentication(self) -> Result[None]:
        current = await self._repository.get_current_user()
        if current.is_failure:
            message = f"Failed to validate user authentication: {current.error_or_none}"
            logger.warning(message)
            return Failure(AuthenticationError(message))
        if current.value_or_none is None:
            logger.warning("No user is currently signed in")
            return Failure(AuthenticationError("No user is currently signed in"))
        return Success(None)

    def _check_rate_limit(self) -> Result[None]:
        remaining = self._limiter.remaining()
        if remaining is None:
            return Success(None)
        seconds = math.ceil(remaining.total_seconds())
        message = f"Please wait {seconds} seconds before requesting another verification email"
        logger.warning(f"Rate limit exceeded: {message}")
        return Failure(QuotaExceededError(message))

    async def _check_email_verification_status(self) -> Result[None]:
        # Lookup problems here do not block the send
        try:
            current = await self._repository.get_current_user()
        except Exception as e:
            logger.warning(f"Could not verify email verification status, proceeding anyway: {e}")
            return Success(None)

        user = current.value_or_none
        if user is None:
            logger.warning("Could not verify email verification status, proceeding anyway")
            return Success(None)
        if user.is_email_verified:
            logger.info("Email is already verified")
            return Failure(ValidationError("Email is already verified"))
        return Success(None)

    def get_remaining_cooldown(self) -> timedelta | None:
        return self._limiter.remaining()

    def reset_rate_limit(self) -> None:
        """Clear the cooldown (tests and admin tooling)."""
        self._limiter.reset()
