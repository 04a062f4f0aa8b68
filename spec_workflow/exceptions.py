"""Exception classes for spec workflow operations.

This module defines the exception hierarchy used throughout the spec_workflow
package. Absence and malformed input are never signalled with these; they are
reserved for environment failures and workflow rule violations.
"""


class SpecWorkflowError(Exception):
    """Base exception for all spec workflow operations.

    This is the base class for all exceptions raised by the spec_workflow
    package. All other exceptions in this module inherit from this class.
    """
    pass


class ProjectNotFoundError(SpecWorkflowError):
    """Raised when a project directory doesn't exist or is inaccessible.

    This exception is raised when a project path does not resolve to an
    existing directory, or resolves to the filesystem root.
    """
    pass


class SpecNotFoundError(SpecWorkflowError):
    """Raised when a specified spec doesn't exist.

    This exception is raised by operations that must act on a spec directory
    (archiving, unarchiving) when the directory is missing.
    """
    pass


class TaskParsingError(SpecWorkflowError):
    """Raised when a task operation is given an invalid argument.

    Malformed tasks.md content never raises; this is used for caller errors
    such as an unknown task status value.
    """
    pass


class ArchiveConflictError(SpecWorkflowError):
    """Raised when an archive or unarchive destination already exists."""
    pass


class ApprovalError(SpecWorkflowError):
    """Base exception for approval workflow errors."""
    pass


class ApprovalStateError(ApprovalError):
    """Raised when an approval transition is not allowed from its current status.

    Approved and rejected requests are terminal; only pending requests can be
    answered, and only pending or needs-revision requests can be revised.
    """
    pass
