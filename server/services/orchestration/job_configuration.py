"""
Job configuration documents.

A configuration is a flat set of string properties exchanged as Hadoop-style
XML::

    <configuration>
      <property><name>user.name</name><value>alice</value></property>
    </configuration>

Instances are immutable; every modification returns a new configuration so a
derived copy never aliases the one a caller still holds.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
import xml.etree.ElementTree as ET

from server.models import JobErrorCode

from .job_errors import JobValidationError

USER_NAME = "user.name"
GROUP_NAME = "group.name"
JOB_ACL = "oozie.job.acl"
APP_PATH = "oozie.wf.application.path"
COORDINATOR_APP_PATH = "oozie.coord.application.path"
BUNDLE_APP_PATH = "oozie.bundle.application.path"
LIBPATH = "oozie.libpath"

XML_CONTENT_TYPE = "application/xml"


class JobConfiguration(Mapping[str, str]):
    def __init__(self, properties: Mapping[str, str] | None = None) -> None:
        self._properties: dict[str, str] = {
            str(key): str(value) for key, value in (properties or {}).items()
        }

    def __getitem__(self, key: str) -> str:
        return self._properties[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._properties)

    def __len__(self) -> int:
        return len(self._properties)

    def __repr__(self) -> str:
        return f"JobConfiguration({self._properties!r})"

    def get_value(self, key: str) -> str | None:
        """Return the property with surrounding whitespace removed, or None when blank."""
        value = self._properties.get(key)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def get_strings(self, key: str) -> list[str]:
        value = self._properties.get(key)
        if value is None:
            return []
        return value.split(",")

    def with_value(self, key: str, value: str) -> "JobConfiguration":
        updated = dict(self._properties)
        updated[key] = value
        return JobConfiguration(updated)

    def without(self, key: str) -> "JobConfiguration":
        updated = dict(self._properties)
        updated.pop(key, None)
        return JobConfiguration(updated)

    def to_dict(self) -> dict[str, str]:
        return dict(self._properties)

    @classmethod
    def from_xml(cls, data: bytes | str) -> "JobConfiguration":
        if not data or not data.strip():
            raise JobValidationError(
                "Configuration document is empty",
                JobErrorCode.INVALID_CONFIGURATION,
            )
        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            raise JobValidationError(
                f"Invalid configuration document: {exc}",
                JobErrorCode.INVALID_CONFIGURATION,
            ) from exc
        if root.tag != "configuration":
            raise JobValidationError(
                f"Unexpected root element [{root.tag}], expected [configuration]",
                JobErrorCode.INVALID_CONFIGURATION,
            )

        properties: dict[str, str] = {}
        for prop in root.findall("property"):
            name = (prop.findtext("name") or "").strip()
            if not name:
                raise JobValidationError(
                    "Configuration property without a name",
                    JobErrorCode.INVALID_CONFIGURATION,
                )
            properties[name] = prop.findtext("value") or ""
        return cls(properties)

    def to_xml(self) -> str:
        root = ET.Element("configuration")
        for key, value in self._properties.items():
            prop = ET.SubElement(root, "property")
            ET.SubElement(prop, "name").text = key
            ET.SubElement(prop, "value").text = value
        return ET.tostring(root, encoding="unicode")
