"""
Error mapping utilities for provider adapters.

This module converts vendor SDK and transport exceptions into ProviderError
instances with a consistent set of attributes.
"""

from typing import Any, Dict, Optional

import anthropic
import httpx
import openai

from .base import ProviderError

PROVIDER_LABELS = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "openai-compatible": "OpenAI-compatible",
}

RATE_LIMIT_PHRASES = ('rate limit', 'too many requests', 'quota exceeded', 'too_many_requests')


class ErrorMapper:
    """Maps provider-specific errors to standardized ProviderError."""

    # Common HTTP status codes that indicate retryable errors
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504, 529}

    TRANSPORT_ERRORS = (
        httpx.TimeoutException,
        httpx.ConnectError,
        httpx.RemoteProtocolError,
        openai.APIConnectionError,
        anthropic.APIConnectionError,
    )

    @staticmethod
    def get_status_code(error: BaseException) -> Optional[int]:
        status_code = getattr(error, 'status_code', None)
        if isinstance(status_code, int):
            return status_code
        response = getattr(error, 'response', None)
        status_code = getattr(response, 'status_code', None)
        return status_code if isinstance(status_code, int) else None

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        """
        Determine if an error is retryable.

        Args:
            error: The exception to check

        Returns:
            bool: True if the error is retryable
        """
        status_code = ErrorMapper.get_status_code(error)
        if status_code is not None and status_code in ErrorMapper.RETRYABLE_STATUS_CODES:
            return True

        if isinstance(error, ErrorMapper.TRANSPORT_ERRORS):
            return True

        error_msg = str(getattr(error, 'message', None) or error).lower()
        return any(phrase in error_msg for phrase in RATE_LIMIT_PHRASES)

    @staticmethod
    def get_retry_after(error: BaseException) -> Optional[float]:
        """
        Extract retry-after value from error if available.

        Args:
            error: The exception to check

        Returns:
            Optional[float]: Seconds to wait before retry, or None
        """
        response = getattr(error, 'response', None)
        headers = getattr(response, 'headers', None)
        if headers is not None:
            retry_after = headers.get('Retry-After') or headers.get('retry-after')
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass

        retry_after = getattr(error, 'retry_after', None)
        if isinstance(retry_after, (int, float)):
            return float(retry_after)
        return None

    @staticmethod
    def describe(error: BaseException) -> str:
        if isinstance(error, httpx.TimeoutException) or isinstance(error, (openai.APITimeoutError, anthropic.APITimeoutError)):
            return f"request timed out ({error})" if str(error) else "request timed out"
        if isinstance(error, ErrorMapper.TRANSPORT_ERRORS):
            return f"connection failed ({error})" if str(error) else "connection failed"
        message = getattr(error, 'message', None)
        if isinstance(message, str) and message:
            return message
        return str(error) or type(error).__name__

    @staticmethod
    def map_error(error: BaseException, provider: str) -> ProviderError:
        """
        Map any exception raised while talking to a provider to ProviderError.

        ProviderError instances pass through unchanged.

        Args:
            error: The exception raised by the vendor SDK or transport
            provider: Provider id the call was made through

        Returns:
            ProviderError with status_code, retry_after, is_retryable and
            original_error filled in
        """
        if isinstance(error, ProviderError):
            return error

        label = PROVIDER_LABELS.get(provider, provider)
        provider_error = ProviderError(
            message=f"{label} API error: {ErrorMapper.describe(error)}",
            provider=provider,
            status_code=ErrorMapper.get_status_code(error),
            retry_after=ErrorMapper.get_retry_after(error),
        )
        provider_error.is_retryable = ErrorMapper.is_retryable(error)
        provider_error.original_error = error
        return provider_error

    @staticmethod
    def malformed_response(provider: str, detail: str) -> ProviderError:
        """Error for a response the adapter could not interpret."""
        label = PROVIDER_LABELS.get(provider, provider)
        return ProviderError(f"{label} API error: malformed response: {detail}", provider)

    @staticmethod
    def get_error_classification(error: ProviderError) -> Dict[str, Any]:
        """
        Get detailed error classification for logging.

        Args:
            error: The ProviderError to classify

        Returns:
            Dict with error classification details
        """
        return {
            'provider': error.provider,
            'status_code': error.status_code,
            'is_retryable': error.is_retryable,
            'retry_after': error.retry_after,
            'error_type': type(error.original_error).__name__ if error.original_error else None,
            'category': ErrorMapper._categorize_error(error),
        }

    @staticmethod
    def _categorize_error(error: ProviderError) -> str:
        if error.status_code:
            if error.status_code in (401, 403):
                return 'authentication'
            elif error.status_code == 429:
                return 'rate_limit'
            elif error.status_code >= 500:
                return 'server_error'
            elif error.status_code >= 400:
                return 'client_error'

        if isinstance(error.original_error, ErrorMapper.TRANSPORT_ERRORS):
            return 'network'

        error_msg = error.args[0].lower() if error.args else ''
        if 'not supported' in error_msg:
            return 'unsupported'
        elif 'timeout' in error_msg or 'timed out' in error_msg:
            return 'timeout'
        elif 'malformed' in error_msg:
            return 'malformed_response'
        return 'unknown'
