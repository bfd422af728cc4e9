# core/exceptions.py

"""
Error taxonomy shared by the access-control apps.

Malformed input is reported with django.core.exceptions.ValidationError,
like every other service in the project. Policy denials and duplicate
registrations are *outcomes*, returned as values by the registration
workflow, and therefore have no exception class here.
"""


class AccessControlError(Exception):
    """Base class for access-control failures"""
    pass


class DatastoreError(AccessControlError):
    """
    Reading or writing access-control state failed.

    Reads are retried once before this is raised; writes never are.
    """
    pass


class RegistrationTimeout(DatastoreError):
    """The caller's deadline passed before the registration could commit"""
    pass


class InvalidTransition(AccessControlError):
    """A status change that the approval/registration lifecycle does not allow"""

    def __init__(self, obj, from_status, to_status):
        self.obj = obj
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{obj.__class__.__name__} {obj.pk} cannot move from "
            f"'{from_status}' to '{to_status}'"
        )


class AuditLogFailure(AccessControlError):
    """An audit entry could not be written"""
    pass
