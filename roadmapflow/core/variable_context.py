"""Run-scoped variable store with ``{{path}}`` template interpolation."""

import copy
import json
import re
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from ..models import ContentPart, ContextValue, MediaPart


TOKEN_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


class VariableContext:
    """Mapping from output-variable name to a value cell.

    Cells are stored as plain dicts (``text``, optional ``parts`` and any
    merged JSON fields) so nested paths can be walked uniformly. Writers
    own their names; a second write to the same name replaces the cell.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        self._last_written: Optional[str] = None
        for name, value in (initial or {}).items():
            self.set(name, value)

    def set(self, name: str, value: Union[ContextValue, Mapping[str, Any], str]):
        if isinstance(value, ContextValue):
            cell = value.model_dump(mode="json", exclude_none=True)
        elif isinstance(value, Mapping):
            cell = copy.deepcopy(dict(value))
            cell.setdefault("text", "")
        else:
            cell = {"text": "" if value is None else str(value)}
        self._values[name] = cell
        self._last_written = name

    def get(self, name: str) -> Optional[Dict[str, Any]]:
        return self._values.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def reset(self):
        self._values.clear()
        self._last_written = None

    def last_written(self) -> Optional[Tuple[str, Dict[str, Any]]]:
        """Name and cell of the most recent write, if any."""
        if self._last_written is None:
            return None
        return self._last_written, self._values[self._last_written]

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._values)

    def resolve(self, path: str) -> Any:
        """Walk a dotted path; return None if any segment is missing."""
        segments = path.strip().split(".")
        if not segments[0]:
            return None

        if segments == ["today"] and "today" not in self._values:
            return date.today().isoformat()

        current: Any = self._values
        for segment in segments:
            if isinstance(current, Mapping):
                if segment not in current:
                    return None
                current = current[segment]
            elif isinstance(current, list) and segment.isdigit():
                index = int(segment)
                if index >= len(current):
                    return None
                current = current[index]
            else:
                return None
        return current

    @staticmethod
    def render(value: Any) -> str:
        """String form of a resolved value as it appears in a prompt."""
        if value is None:
            return ""
        if isinstance(value, Mapping):
            text = value.get("text")
            return "" if text is None else str(text)
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (list, tuple)):
            return json.dumps(list(value), default=str)
        return str(value)

    def interpolate(self, template: Optional[str]) -> str:
        """Replace every ``{{ path }}`` token; unresolved tokens vanish."""
        if not template:
            return ""
        return TOKEN_PATTERN.sub(lambda match: self.render(self.resolve(match.group(1))), template)

    def construct_parts(self, template: Optional[str]) -> List[ContentPart]:
        """
        Build multimodal content parts for a prompt template.

        Media carried by a referenced cell is spliced in right after the
        token that referenced it, once per cell. Without media the result
        is a single text part equal to ``interpolate(template)``.
        """
        template = template or ""
        parts: List[ContentPart] = []
        spliced = set()
        buffer: List[str] = []
        position = 0

        for match in TOKEN_PATTERN.finditer(template):
            value = self.resolve(match.group(1))
            buffer.append(template[position:match.start()])
            buffer.append(self.render(value))
            position = match.end()

            if id(value) in spliced:
                continue
            media = self._media_of(value)
            if media:
                spliced.add(id(value))
                text = "".join(buffer)
                if text:
                    parts.append(ContentPart(text=text))
                buffer = []
                parts.extend(ContentPart(inline_data=item) for item in media)

        if not spliced:
            return [ContentPart(text=self.interpolate(template))]

        buffer.append(template[position:])
        text = "".join(buffer)
        if text:
            parts.append(ContentPart(text=text))
        return parts

    @staticmethod
    def _media_of(value: Any) -> List[MediaPart]:
        """Media parts carried by a cell; entries that are not media are skipped."""
        if not isinstance(value, Mapping) or not isinstance(value.get("parts"), list):
            return []
        media = []
        for item in value["parts"]:
            try:
                media.append(MediaPart.model_validate(item))
            except ValidationError:
                continue
        return media
