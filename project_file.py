"""
Project files for the Equation Editor.

A project is a small versioned JSON record wrapping the document text:

    {
      "version": "1.0",
      "metadata": {"name": ..., "createdAt": ..., "updatedAt": ...,
                   "generator": ..., "generatorVersion": ...},
      "globalPreamble": "...",       # optional
      "document": "...separator-delimited document text..."
    }
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from svg_codec import GENERATOR_NAME, GENERATOR_VERSION

PROJECT_VERSION = "1.0"


def _now():
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ProjectMetadata:
    created_at: str
    updated_at: str
    generator: str = GENERATOR_NAME
    generator_version: str = GENERATOR_VERSION
    name: Optional[str] = None

    def to_dict(self):
        data = {}
        if self.name is not None:
            data["name"] = self.name
        data.update({
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "generator": self.generator,
            "generatorVersion": self.generator_version,
        })
        return data


@dataclass
class ProjectData:
    document: str
    metadata: ProjectMetadata
    version: str = PROJECT_VERSION
    global_preamble: Optional[str] = None

    def to_dict(self):
        data = {"version": self.version, "metadata": self.metadata.to_dict()}
        if self.global_preamble is not None:
            data["globalPreamble"] = self.global_preamble
        data["document"] = self.document
        return data


def new_project(document="", name=None, global_preamble=None):
    stamp = _now()
    return ProjectData(
        document=document,
        metadata=ProjectMetadata(created_at=stamp, updated_at=stamp, name=name),
        global_preamble=global_preamble,
    )


def project_from_dict(data):
    """Validate a decoded project record.

    Raises ValueError on a missing or mistyped field.
    """
    if not isinstance(data, dict):
        raise ValueError("Project file must contain a JSON object.")
    document = data.get("document")
    if not isinstance(document, str):
        raise ValueError("Project file: 'document' must be a string.")
    version = data.get("version")
    if not isinstance(version, str):
        raise ValueError("Project file: missing 'version'.")
    meta = data.get("metadata")
    if not isinstance(meta, dict):
        raise ValueError("Project file: missing 'metadata'.")
    for key in ("createdAt", "updatedAt"):
        if not isinstance(meta.get(key), str):
            raise ValueError(f"Project file: metadata.{key} must be a string.")
    preamble = data.get("globalPreamble")
    if preamble is not None and not isinstance(preamble, str):
        raise ValueError("Project file: 'globalPreamble' must be a string.")

    return ProjectData(
        document=document,
        metadata=ProjectMetadata(
            created_at=meta["createdAt"],
            updated_at=meta["updatedAt"],
            generator=meta.get("generator", GENERATOR_NAME),
            generator_version=meta.get("generatorVersion", GENERATOR_VERSION),
            name=meta.get("name"),
        ),
        version=version,
        global_preamble=preamble,
    )


def load_project(path):
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path}: not a JSON project file ({exc}).") from exc
    return project_from_dict(data)


def save_project(project, path):
    """Write the project as indented JSON, refreshing ``updatedAt``."""
    project.metadata.updated_at = _now()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(project.to_dict(), f, indent=2, ensure_ascii=False)
    return path
