"""
Error taxonomy for a run.

Every failure carries a stable ``kind`` string and an optional ``detail``
so the surrounding system can report it without seeing a traceback.
"""

from typing import Any, Dict, Optional


class OperatorError(Exception):
    """Base class for failures local to one run."""

    kind = "operator_error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.kind)
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.detail}


class ProvisioningFailure(OperatorError):
    """A browser session could not be created or attached."""

    kind = "provisioning_failure"


class ExecutionFailure(OperatorError):
    """A browser action failed. The session has already been released."""

    kind = "execution_failure"

    def __init__(self, detail: Optional[str] = None, tool: Optional[str] = None):
        super().__init__(detail)
        self.tool = tool

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.tool:
            d["tool"] = self.tool
        return d


class MalformedDecision(OperatorError):
    """The oracle returned something that is not a usable step."""

    kind = "malformed_decision"


class OracleFailure(OperatorError):
    """The oracle could not be reached or returned nothing."""

    kind = "oracle_failure"


class ConfigurationFailure(OperatorError):
    """Required credentials or settings are missing."""

    kind = "configuration_failure"
