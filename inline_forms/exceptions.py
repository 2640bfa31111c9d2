"""
Custom exception classes for embedded form errors.

This module provides specialized exception classes for the failure modes
of the embedded form orchestrator with centralized error details.
"""

import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class EmbeddedFormError(Exception):
    """
    Base exception for embedded form errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class ConfigurationError(EmbeddedFormError):
    """
    Exception raised when widget settings cannot be resolved.

    This includes unknown record kinds or bundles, invalid settings values
    and record kinds without a form handler.
    """

    def __init__(self, message: str, target_type: Optional[str] = None,
                 bundle: Optional[str] = None, field_name: Optional[str] = None):
        self.target_type = target_type
        self.bundle = bundle
        self.field_name = field_name

        context = {
            'target_type': target_type,
            'bundle': bundle,
            'field_name': field_name
        }

        recovery_suggestions = [
            "Check the record_kinds section of config.yaml",
            "Verify the field settings reference an existing record kind",
            "Make sure every allowed bundle is defined for the record kind"
        ]

        super().__init__(message, context, recovery_suggestions)


class AccessDenied(EmbeddedFormError):
    """Exception raised when a guarded row transition is refused."""

    def __init__(self, operation: str, record: Any = None, message: Optional[str] = None):
        self.operation = operation
        self.record = record

        record_id = getattr(record, 'id', None)
        kind = getattr(record, 'kind', None)
        if message is None:
            message = f"Access denied: cannot {operation} {kind or 'record'} {record_id}"

        context = {
            'operation': operation,
            'record_kind': kind,
            'record_id': record_id
        }

        recovery_suggestions = [
            "Ask an administrator for the required permission",
            "Reload the form, the available actions may have changed"
        ]

        super().__init__(message, context, recovery_suggestions)


class ValidationError(EmbeddedFormError):
    """
    Exception raised when an embedded form fails validation.

    A single error is attached to the embedded form node it belongs to.
    The aggregate raised by finalize carries every collected error in
    ``errors``.
    """

    def __init__(self, message: str, form_id: Optional[str] = None,
                 field_name: Optional[str] = None,
                 element_path: Optional[str] = None,
                 errors: Optional[List['ValidationError']] = None):
        self.form_id = form_id
        self.field_name = field_name
        self.element_path = element_path
        self.errors = errors or []

        context = {
            'form_id': form_id,
            'field_name': field_name,
            'element_path': element_path,
            'error_count': len(self.errors)
        }

        recovery_suggestions = [
            "Review the highlighted fields and correct the values",
            "Add the required records before saving"
        ]

        super().__init__(message, context, recovery_suggestions)

    @property
    def messages(self) -> List[str]:
        if not self.errors:
            return [self.message]
        return [error.message for error in self.errors]


class IdentityCollision(EmbeddedFormError):
    """Exception raised when two distinct form paths produce one form id."""

    def __init__(self, form_id: str, existing_path: Any, new_path: Any):
        self.form_id = form_id
        self.existing_path = existing_path
        self.new_path = new_path

        message = (f"Form id {form_id} allocated for both '{existing_path}' "
                   f"and '{new_path}'")

        context = {
            'form_id': form_id,
            'existing_path': str(existing_path),
            'new_path': str(new_path)
        }

        super().__init__(message, context, ["Report this as a bug"])


class InvalidTransition(EmbeddedFormError):
    """Exception raised when a row transition does not match the open row."""

    def __init__(self, transition: str, form_id: str, current_mode: Any = None):
        self.transition = transition
        self.form_id = form_id
        self.current_mode = current_mode

        message = (f"Cannot {transition} on form {form_id[:10]}: "
                   f"open row is {current_mode or 'closed'}")

        context = {
            'transition': transition,
            'form_id': form_id,
            'current_mode': str(current_mode) if current_mode else None
        }

        super().__init__(message, context, ["Reload the form and try again"])


class UnknownControl(EmbeddedFormError):
    """Exception raised when a triggered control is not part of the rebuilt form."""

    def __init__(self, control_name: str):
        self.control_name = control_name
        super().__init__(f"Unknown control: {control_name}", {'control_name': control_name},
                         ["Reload the form and try again"])


class PersistenceError(EmbeddedFormError):
    """
    Exception raised when the record store fails during commit.

    No partial commit is applied when this is raised.
    """

    def __init__(self, operation: str, original_error: Exception,
                 record_id: Any = None, message: Optional[str] = None):
        self.operation = operation
        self.original_error = original_error
        self.record_id = record_id

        if message is None:
            message = f"Failed to {operation} record {record_id}: {str(original_error)}"

        context = {
            'operation': operation,
            'record_id': record_id,
            'original_error_type': type(original_error).__name__,
            'original_error_message': str(original_error)
        }

        recovery_suggestions = [
            "No changes were saved, submit the form again",
            "Check that the record store is available"
        ]

        super().__init__(message, context, recovery_suggestions)
