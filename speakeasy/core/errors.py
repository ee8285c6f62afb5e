"""
SpeakEasy — Error Taxonomy

Collaborator failures are caught at the component boundary and degrade the
session's features; nothing here is meant to terminate a session.
"""

from __future__ import annotations


class SpeakEasyError(Exception):
    """Base class for all SpeakEasy errors."""


class CollaboratorError(SpeakEasyError):
    """An external analysis, storage or identity service failed."""


class DetectorCredentialsError(CollaboratorError):
    """The emotion-detection service rejected or is missing credentials."""


class MalformedAdviceError(CollaboratorError):
    """The advice generator returned something other than N suggestion strings."""


class AuthenticationError(SpeakEasyError):
    """A bearer token could not be verified."""
