"""
System-wide Pydantic models and enums for the narrative template engine.
"""

import logging
import os
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field, PositiveInt

# Configure logger
logger = logging.getLogger(__name__)


# --- Parse error categories ---

class TemplateSyntaxErrorKind(str, Enum):
    UNTERMINATED_STATEMENT = "unterminated_statement"
    UNTERMINATED_TAG = "unterminated_tag"
    UNKNOWN_CONTROL_KEYWORD = "unknown_control_keyword"
    MALFORMED_LOOP_SYNTAX = "malformed_loop_syntax"
    MALFORMED_INCLUDE_SYNTAX = "malformed_include_syntax"
    DUPLICATE_INCLUDE_PARAM = "duplicate_include_param"
    MISSING_TERMINATOR = "missing_terminator" # End of input inside an if/loop block
    EMPTY_STATEMENT = "empty_statement"


class SourceLocation(BaseModel):
    """Position of a construct in template source (both 1-based)."""
    line: PositiveInt
    column: PositiveInt

    @classmethod
    def from_offset(cls, source: str, offset: int) -> "SourceLocation":
        """Computes line/column for a character offset into source."""
        offset = max(0, min(offset, len(source)))
        line = source.count("\n", 0, offset) + 1
        last_newline = source.rfind("\n", 0, offset)
        return cls(line=line, column=offset - last_newline)


# --- Engine configuration ---

class EngineSettings(BaseModel):
    """
    Configuration for a NarrativeEngine instance.
    """
    max_include_depth: PositiveInt = Field(
        32, description="Maximum nesting of include directives before evaluation fails with CyclicIncludeError."
    )
    environment: Dict[str, str] = Field(
        default_factory=dict,
        description="Initial key/value settings readable by expressions as %key."
    )
    include_extension: str = Field(
        ".liquid", description="File extension appended to include names by DirectoryIncludeResolver."
    )

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """
        Builds settings from NARRATIVE_* environment variables, falling back to defaults.
        """
        values = {}
        depth = os.environ.get("NARRATIVE_MAX_INCLUDE_DEPTH")
        if depth:
            values["max_include_depth"] = depth
        extension = os.environ.get("NARRATIVE_INCLUDE_EXTENSION")
        if extension is not None:
            values["include_extension"] = extension
        logger.debug(f"EngineSettings.from_env overrides: {values}")
        return cls(**values)
