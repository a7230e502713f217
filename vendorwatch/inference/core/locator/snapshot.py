import re

from pydantic import BaseModel, Field

# `- textbox "User ID" [ref=e12]`
ARIA_LINE = re.compile(
    r"^\s*-\s*(?P<role>[\w-]+)(?:\s+\"(?P<name>[^\"]*)\")?[^\[]*(?:\[[^\]]*\]\s*)*?"
    r"\[ref=(?P<ref>[^\]]+)\]"
)
# `[12]<input type=text name=userId placeholder=User ID />Label`
INDEXED_LINE = re.compile(
    r"\[(?P<ref>\d+)\]<(?P<tag>[\w-]+)(?P<attrs>[^>]*?)/?>(?P<text>[^\n]*)"
)
ATTRIBUTE = re.compile(r"([\w:-]+)=(\"[^\"]*\"|'[^']*'|.+?)(?=\s+[\w:-]+=|\s*/?$)")

TEXT_INPUT_TYPES = {"", "text", "email", "tel", "search", "number", "password"}
BUTTON_INPUT_TYPES = {"submit", "button", "image"}


class SnapshotElement(BaseModel):
    ref: str
    kind: str  # aria role or html tag, lower case
    name: str = ""
    attributes: dict[str, str] = Field(default_factory=dict)

    @property
    def input_type(self) -> str:
        return self.attributes.get("type", "").lower()

    @property
    def is_text_input(self) -> bool:
        if self.kind in ("textbox", "searchbox", "textarea"):
            return True
        return self.kind == "input" and self.input_type in TEXT_INPUT_TYPES

    @property
    def is_password(self) -> bool:
        return self.kind == "input" and self.input_type == "password"

    @property
    def is_button(self) -> bool:
        if self.kind in ("button", "link", "a"):
            return True
        return self.kind == "input" and self.input_type in BUTTON_INPUT_TYPES

    @property
    def search_text(self) -> str:
        """Everything a heuristic may match against, lower case."""
        parts = [self.name]
        for key in ("id", "name", "placeholder", "aria-label", "title", "value"):
            if key in self.attributes:
                parts.append(self.attributes[key])
        return " ".join(parts).lower()

    @property
    def selector(self) -> str | None:
        element_id = self.attributes.get("id")
        if element_id and re.fullmatch(r"[A-Za-z][\w-]*", element_id):
            return f"#{element_id}"
        name = self.attributes.get("name")
        if name:
            tag = self.kind if self.kind in ("input", "button", "textarea") else "*"
            return f'{tag}[name="{name}"]'
        return None


def _parse_attributes(raw: str) -> dict[str, str]:
    attributes = {}
    for key, value in ATTRIBUTE.findall(raw.strip()):
        attributes[key.lower()] = value.strip().strip("\"'")
    return attributes


def parse_snapshot(snapshot: str) -> list[SnapshotElement]:
    """Interactive elements of a structural snapshot, in document order.

    Understands both the aria outline (``[ref=e12]``) and the indexed DOM
    listing (``[12]<input ... />``) formats.
    """
    elements = []
    for line in snapshot.splitlines():
        match = ARIA_LINE.match(line)
        if match:
            elements.append(
                SnapshotElement(
                    ref=match.group("ref"),
                    kind=match.group("role").lower(),
                    name=match.group("name") or "",
                )
            )
            continue

        match = INDEXED_LINE.search(line)
        if match:
            attributes = _parse_attributes(match.group("attrs"))
            text = match.group("text").strip()
            name = text or attributes.get("aria-label", "") or attributes.get(
                "placeholder", ""
            )
            elements.append(
                SnapshotElement(
                    ref=match.group("ref"),
                    kind=match.group("tag").lower(),
                    name=name,
                    attributes=attributes,
                )
            )
    return elements


def refs_in(elements: list[SnapshotElement]) -> set[str]:
    return {element.ref for element in elements}


def find_by_label(elements: list[SnapshotElement], label: str) -> SnapshotElement | None:
    label = label.strip().lower()
    if not label:
        return None
    for element in elements:
        if element.name.strip().lower() == label:
            return element
    for element in elements:
        if label in element.search_text:
            return element
    return None
