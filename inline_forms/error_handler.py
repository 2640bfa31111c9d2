"""
Error handling utilities for the embedded-forms Streamlit host.
Maps orchestrator exceptions to user-friendly messages and recovery options.
"""

import streamlit as st
import logging
import traceback
from typing import Dict, Any, Optional, Callable, List

from .exceptions import (
    AccessDenied,
    ConfigurationError,
    EmbeddedFormError,
    IdentityCollision,
    InvalidTransition,
    PersistenceError,
    UnknownControl,
    ValidationError
)
from .session_manager import SessionManager

logger = logging.getLogger(__name__)


class ErrorType:
    """Error type constants."""
    CONFIGURATION = "configuration"
    ACCESS = "access"
    VALIDATION = "validation"
    IDENTITY = "identity"
    PERSISTENCE = "persistence"
    TRANSITION = "transition"
    SYSTEM = "system"


_TYPE_BY_EXCEPTION = [
    (ConfigurationError, ErrorType.CONFIGURATION),
    (AccessDenied, ErrorType.ACCESS),
    (ValidationError, ErrorType.VALIDATION),
    (IdentityCollision, ErrorType.IDENTITY),
    (PersistenceError, ErrorType.PERSISTENCE),
    (InvalidTransition, ErrorType.TRANSITION),
    (UnknownControl, ErrorType.TRANSITION),
]


def classify(error: Exception) -> str:
    """Error type constant for an exception."""
    for exception_type, error_type in _TYPE_BY_EXCEPTION:
        if isinstance(error, exception_type):
            return error_type
    return ErrorType.SYSTEM


class ErrorHandler:
    """Error handling for the embedded-forms host."""

    @staticmethod
    def handle_error(
        error: Exception,
        context: str,
        error_type: Optional[str] = None,
        user_message: Optional[str] = None,
        show_details: bool = False
    ) -> None:
        """
        Handle errors with user-friendly messages and recovery suggestions.

        Args:
            error: The exception that occurred
            context: Context where the error occurred
            error_type: Type of error (from ErrorType constants), classified when omitted
            user_message: Custom user-friendly message
            show_details: Whether to show technical details
        """
        error_type = error_type or classify(error)
        logger.error(f"Error in {context}: {str(error)}", exc_info=True)

        if not user_message:
            user_message = ErrorHandler._get_user_friendly_message(error, error_type)

        ErrorHandler._display_error(user_message, error, context,
                                    ErrorHandler.get_recovery_suggestions(error), show_details)

    @staticmethod
    def _get_user_friendly_message(error: Exception, error_type: str) -> str:
        """Generate user-friendly error messages based on error type."""
        error_messages = {
            ErrorType.CONFIGURATION: {
                "default": "⚙️ This field is not configured correctly. Please check config.yaml."
            },
            ErrorType.ACCESS: {
                "default": "🔐 You don't have permission to perform this action."
            },
            ErrorType.VALIDATION: {
                ValidationError: "✅ Some embedded forms contain errors. Please review them and try again.",
                ValueError: "✅ Data validation failed. Please check your input and try again.",
                "default": "✅ Validation error occurred. Please review your data and try again."
            },
            ErrorType.IDENTITY: {
                "default": "🧩 Two embedded forms claimed the same identity. Please reload the form."
            },
            ErrorType.PERSISTENCE: {
                "default": "💾 Saving failed and nothing was stored. Please try again."
            },
            ErrorType.TRANSITION: {
                "default": "↩️ That action is not available right now. Please reload the form."
            },
            ErrorType.SYSTEM: {
                MemoryError: "💻 System is running low on memory. Please try again or contact support.",
                "default": "💻 System error occurred. Please try again or contact support."
            }
        }

        error_type_messages = error_messages.get(error_type, error_messages[ErrorType.SYSTEM])

        for exception_type, message in error_type_messages.items():
            if exception_type != "default" and isinstance(error, exception_type):
                return message

        return error_type_messages.get("default", "An unexpected error occurred.")

    @staticmethod
    def get_recovery_suggestions(error: Exception) -> List[str]:
        """Recovery suggestions carried by the exception, if any."""
        if isinstance(error, EmbeddedFormError):
            return list(error.get_full_details().get('recovery_suggestions', []))
        return []

    @staticmethod
    def _display_error(
        user_message: str,
        error: Exception,
        context: str,
        suggestions: Optional[List[str]] = None,
        show_details: bool = False
    ) -> None:
        """Display error message to user with recovery suggestions."""
        st.error(user_message)

        if isinstance(error, ValidationError):
            for message in error.messages:
                st.write(f"• {message}")

        if suggestions:
            st.subheader("🔧 Suggested Actions:")
            for suggestion in suggestions:
                st.write(f"- {suggestion}")

        if show_details:
            with st.expander("🔍 Technical Details"):
                st.write(f"**Error Type:** {type(error).__name__}")
                st.write(f"**Context:** {context}")
                st.write(f"**Error Message:** {str(error)}")
                if isinstance(error, EmbeddedFormError):
                    st.json(ErrorHandler._json_safe(error.get_full_details()))
                st.code(traceback.format_exc())

    @staticmethod
    def _json_safe(details: Dict[str, Any]) -> Dict[str, Any]:
        return {key: value if isinstance(value, (str, int, float, bool, list, type(None)))
                else str(value) for key, value in details.items()}

    @staticmethod
    def with_error_handling(
        func: Callable,
        context: str,
        error_type: Optional[str] = None,
        user_message: Optional[str] = None,
        show_details: bool = False,
        default_return: Any = None
    ) -> Any:
        """
        Decorator-like function to wrap operations with error handling.

        Args:
            func: Function to execute
            context: Context description
            error_type: Type of error expected, classified when omitted
            user_message: Custom user message
            show_details: Show technical details
            default_return: Value to return on error

        Returns:
            Function result or default_return on error
        """
        try:
            return func()
        except Exception as e:
            ErrorHandler.handle_error(e, context, error_type, user_message, show_details)
            return default_return

    @staticmethod
    def restart_cycle() -> None:
        """Throw away the embedded form state and start over."""
        SessionManager.reset_cycle()
        st.info("🔄 Embedded forms were reset")

