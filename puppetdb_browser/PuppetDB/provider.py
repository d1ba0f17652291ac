#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Callable, Dict, List, Mapping, Optional

from puppetdb_browser.base import ObjectProvider, ProviderOptions
from puppetdb_browser.errors import ConfigError, UnknownEntryError
from puppetdb_browser.PuppetDB.config import InstanceConfig, read_config
from puppetdb_browser.PuppetDB.model import (
    ENTRY_TYPES,
    ProviderContext,
    PuppetEntry,
    WPPuppetRoot,
    reconstruct,
)
from puppetdb_browser.PuppetDB.puppetdb import PuppetDBClient, build_client

logger = logging.getLogger(__name__)


class PuppetDBProvider(ObjectProvider):
    def __init__(
        self,
        options: ProviderOptions,
        config: Mapping[str, InstanceConfig],
        client_factory: Callable[[InstanceConfig], PuppetDBClient] = build_client,
    ) -> None:
        super().__init__(options)
        self.context = ProviderContext(config=dict(config), client_factory=client_factory)

    def root(self) -> WPPuppetRoot:
        return WPPuppetRoot(title=WPPuppetRoot.LABEL, context=self.context)

    def get_schemas_payload(self) -> Dict[str, Any]:
        return {name: cls.describe() for name, cls in ENTRY_TYPES.items()}

    def get_root_objects_payload(self) -> Dict[str, List[Dict]]:
        """Return the root level objects (configured instances)."""
        return self._list_payload(self.root())

    def resolve(self, path_str: str, state: Optional[Dict[str, Any]] = None) -> PuppetEntry:
        """Find the entry for a request.

        A state record is enough on its own; without one the path is walked
        from the root, listing each level and matching path segments.
        """
        if state is not None:
            return reconstruct(state, self.context)

        entry: PuppetEntry = self.root()
        for segment in [s for s in path_str.strip().split("/") if s]:
            if not entry.can_list():
                raise UnknownEntryError(f"{entry.id} has no children, cannot resolve {path_str}")
            match = next((c for c in entry.list_children() if c.segment == segment), None)
            if match is None:
                raise UnknownEntryError(f"No entry named '{segment}' under {entry.id}")
            entry = match
        return entry

    def _list_payload(self, entry: PuppetEntry) -> Dict[str, List[Dict]]:
        if not entry.can_list():
            raise UnknownEntryError(f"{entry.id} ({entry.LABEL}) cannot be listed")
        children = entry.list_children()
        logger.debug("Listed %d children of %s", len(children), entry.id)
        return {"objects": [c.to_dict() for c in children]}

    def get_objects_for_path(
        self, path_str: str, state: Optional[Dict[str, Any]] = None
    ) -> Dict[str, List[Dict]]:
        """Return the children of the entry at path_str (or described by state)."""
        logger.debug("get_objects_for_path called with: %s", path_str)
        return self._list_payload(self.resolve(path_str, state))

    def read_object(self, path_str: str, state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Return the displayable content of the entry at path_str (or described by state)."""
        logger.debug("read_object called with: %s", path_str)
        entry = self.resolve(path_str, state)
        if not entry.can_read():
            raise UnknownEntryError(f"{entry.id} ({entry.LABEL}) cannot be read")
        return {"id": entry.id, "content": entry.read()}


def main() -> None:
    parser = argparse.ArgumentParser(description="PuppetDB Object Provider")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8891, help="Port to bind (default: 8891)")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file (default: $PUPPETDB_BROWSER_CONFIG or ~/.puppetdb_browser.yaml)",
    )
    parser.add_argument("--root-name", default="PuppetDB", help="Name shown for the provider root")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = read_config(args.config)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    if not config:
        print("Error: no PuppetDB instances configured", file=sys.stderr)
        sys.exit(1)

    provider = PuppetDBProvider(
        ProviderOptions(root_name=args.root_name),
        config=config,
    )
    provider.serve(args.host, args.port)


if __name__ == "__main__":
    main()
