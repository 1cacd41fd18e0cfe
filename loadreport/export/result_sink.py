import json
import logging
import os
import sys
from typing import Optional, TextIO

from loadreport.bench.snapshot import Snapshot
from loadreport.export.renderers import get_renderer

logger = logging.getLogger(__name__)


class ResultSink:
    def __init__(self, out: Optional[TextIO] = None, json_path: Optional[str] = None) -> None:
        self.out = out if out is not None else sys.stdout
        self.json_path = json_path
        self.rendered: Optional[str] = None

    def write(self, snapshot: Snapshot, output: str = "") -> bool:
        """
        Render the snapshot for `output` and write it out.
        Rendering and JSON export errors are logged and reported as False;
        the snapshot itself stays valid.
        """
        try:
            text = get_renderer(output).render(snapshot)
        except Exception:
            logger.exception("error: could not render report (output=%r)", output)
            return False

        self.rendered = text
        self.out.write(text)
        self.out.write("\n")

        if self.json_path:
            try:
                self.write_json(snapshot, self.json_path)
            except OSError:
                logger.exception("error: could not write JSON report to %s", self.json_path)
                return False
        return True

    def write_json(self, snapshot: Snapshot, path: str) -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2)
        logger.info("report written to %s", path)
