"""Exception types raised by the session manager."""

from __future__ import annotations


class AlzaCompareError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(AlzaCompareError):
    """Environment configuration is missing or inconsistent."""


class ChallengeTimeout(AlzaCompareError):
    """The Cloudflare challenge did not clear within the allowed window."""


class LoginFormNotFound(AlzaCompareError):
    """The login form never became visible."""


class UnexpectedLoginState(AlzaCompareError):
    """After submitting credentials the page is neither logged in nor on verification."""


class VerificationCodeRejected(AlzaCompareError):
    """The SMS code was not accepted; the session stays open for another attempt."""


class NoPendingVerification(AlzaCompareError):
    """A code was submitted for an account that is not waiting for one."""


class NoActiveSession(AlzaCompareError):
    """The account has no logged-in session."""


class SessionExpired(AlzaCompareError):
    """The account's session outlived its TTL."""


class ExtractionFailed(AlzaCompareError):
    """No extraction strategy produced a usable price."""
