"""
Fault Taxonomy

Every failure the intake pipeline can raise. Faults carry the HTTP status
and the public message used when they reach a caller; the diagnostic detail
(``str(fault)``) is only ever written to the log.

Faults raised inside background processing (ClassificationFault,
PersistenceFault) never reach an HTTP caller: the acknowledgment has
already been sent by then.
"""

from typing import List, Optional


class WorklogFault(Exception):
    """Base class for all intake faults"""

    status_code: int = 500
    public_message: str = "internal error"

    def __init__(self, detail: str = "", public_message: Optional[str] = None):
        super().__init__(detail or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class ConfigurationFault(WorklogFault):
    """A required credential is missing or malformed"""

    status_code = 400
    public_message = "configuration incomplete"

    def __init__(self, detail: str = "", missing: Optional[List[str]] = None):
        self.missing = list(missing or [])
        public = None
        if self.missing:
            public = f"missing configuration: {', '.join(self.missing)}"
        super().__init__(detail or public or "", public_message=public)


class AuthenticationFault(WorklogFault):
    """Signature mismatch. Carries no detail beyond the fixed text."""

    status_code = 403
    public_message = "verification failed"


class IntegrityFault(WorklogFault):
    """Decrypted payload failed its structural or channel id check"""

    status_code = 500
    public_message = "decryption failed"


class MalformedDeliveryFault(WorklogFault):
    """A required request parameter or envelope field is absent"""

    status_code = 400
    public_message = "malformed request"


class ClassificationFault(WorklogFault):
    """Classification of a message failed (background only)"""

    public_message = "classification failed"


class PersistenceFault(WorklogFault):
    """The record store could not be read or written"""

    public_message = "persistence failed"
