"""Include resolvers: supply sub-template source text by name."""
import logging
import os
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class DictIncludeResolver:
    """
    Manages the registration, storage, and lookup of sub-templates held in memory.
    """

    def __init__(self, templates: Optional[Dict[str, str]] = None):
        self.templates: Dict[str, str] = {}
        for name, source in (templates or {}).items():
            self.register(name, source)
        logger.info(f"DictIncludeResolver initialized with {len(self.templates)} templates.")

    def register(self, name: str, source: str) -> None:
        """
        Registers sub-template source under a name, replacing any previous source.

        Raises:
            ValueError: If the name is empty or the source is not a string.
        """
        if not name:
            raise ValueError("Include name must be a non-empty string.")
        if not isinstance(source, str):
            raise ValueError(f"Source for include '{name}' must be a string, got {type(source).__name__}.")
        if name in self.templates:
            logger.warning(f"Overwriting existing include registration for name: '{name}'")
        self.templates[name] = source
        logger.debug(f"Registered include: '{name}'")

    def fetch_include(self, name: str) -> Optional[str]:
        source = self.templates.get(name)
        if source is None:
            logger.debug(f"No include registered for name: '{name}'")
        return source


class DirectoryIncludeResolver:
    """
    Resolves include names to files below a base directory.

    ``{% include header %}`` reads ``<base_dir>/header<extension>``. Names that
    would escape the base directory are treated as unknown.
    """

    def __init__(self, base_dir: str, extension: str = ".liquid", encoding: str = "utf-8"):
        self.base_dir = os.path.abspath(base_dir)
        self.extension = extension
        self.encoding = encoding
        logger.info(f"DirectoryIncludeResolver initialized for '{self.base_dir}' (extension '{extension}')")

    def _path_for(self, name: str) -> Optional[str]:
        candidate = os.path.abspath(os.path.join(self.base_dir, name + self.extension))
        if os.path.commonpath([self.base_dir, candidate]) != self.base_dir:
            logger.warning(f"Include name '{name}' resolves outside of '{self.base_dir}', refusing.")
            return None
        return candidate

    def fetch_include(self, name: str) -> Optional[str]:
        path = self._path_for(name)
        if path is None or not os.path.isfile(path):
            logger.debug(f"Include '{name}' not found under '{self.base_dir}'")
            return None
        with open(path, "r", encoding=self.encoding) as f:
            return f.read()
