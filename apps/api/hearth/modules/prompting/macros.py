"""
Template macros rendered against a chat's participants, notes and persona.

Two passes, in order:
1) bracketed  {{characters[name,description,images,expressions,avatar,focus]}}
2) scalar     {{characters}} {{notes}} {{player}} {{time}} {{date}} {{random}}
   dotted     {{player.name}} {{<character_id>.description}} {{<character_id>.images}}

Anything that does not resolve is left in place and logged.
"""
from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Callable, List, Optional, Sequence

from hearth.modules.characters.models import Character
from hearth.modules.notes.models import Note

_log = logging.getLogger(__name__)

BRACKET_RE = re.compile(r"{{\s*([a-zA-Z0-9_]+)\[(.*?)\]\s*}}")
SCALAR_RE = re.compile(r"{{\s*([a-zA-Z0-9_.]+)\s*}}")

_XML_ESCAPES = str.maketrans({"<": "&lt;", ">": "&gt;", "&": "&amp;", "'": "&apos;", '"': "&quot;"})


def escape_xml(value: Optional[str]) -> str:
    if not isinstance(value, str):
        return ""
    return value.translate(_XML_ESCAPES)


class MacroKind(Enum):
    CHARACTERS = "characters"
    NOTES = "notes"
    PLAYER = "player"
    TIME = "time"
    DATE = "date"
    RANDOM = "random"

    @classmethod
    def lookup(cls, name: str) -> Optional["MacroKind"]:
        name = name.lower()
        if name == "scenarios":
            return cls.NOTES
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass(frozen=True)
class MacroContext:
    all_characters: Sequence[Character] = ()
    persona_id: Optional[str] = None
    chat_characters: Sequence[Character] = ()
    active_notes: Sequence[Note] = ()
    clock: Callable[[], datetime] = field(default=datetime.now)
    rng: Callable[[], float] = field(default=random.random)

    def find_character(self, character_id: Optional[str]) -> Optional[Character]:
        if not character_id:
            return None
        wanted = character_id.lower()
        for c in self.all_characters:
            if c.id.lower() == wanted:
                return c
        return None

    @property
    def persona(self) -> Optional[Character]:
        return self.find_character(self.persona_id)


class MacroEngine:
    def __init__(self, context: MacroContext) -> None:
        self.ctx = context

    def expand(self, template: Optional[str]) -> str:
        if not template:
            return ""
        text = BRACKET_RE.sub(self._bracketed, template)
        return SCALAR_RE.sub(self._scalar, text)

    # -------------------------
    # shared
    # -------------------------
    def augmented_description(self, character: Character) -> str:
        """Base description plus every active note's text for this character."""
        desc = character.description or ""
        for note in self.ctx.active_notes:
            extra = note.character_overrides.get(character.id)
            if extra and extra.strip():
                desc += f"\n\n{extra}"
        return desc

    # -------------------------
    # pass 1
    # -------------------------
    def _bracketed(self, m: "re.Match[str]") -> str:
        resource, props_raw = m.group(1), m.group(2)
        if resource.lower() != MacroKind.CHARACTERS.value:
            _log.warning("macro %s not found", m.group(0))
            return m.group(0)

        props = {p.strip().lower() for p in props_raw.split(",")}
        include_player = "player" in props or "focus" in props

        chars: List[Character] = list(self.ctx.chat_characters)
        persona = self.ctx.persona if include_player else None
        if persona is not None and all(c.id != persona.id for c in chars):
            chars.append(persona)

        blocks = []
        for c in chars:
            block = self._entity_block(c, props, focus=persona is not None and c.id == persona.id)
            if block:
                blocks.append(block)
        return "\n\n".join(blocks)

    def _entity_block(self, c: Character, props: set, *, focus: bool) -> str:
        lines: List[str] = []
        if "name" in props and c.name:
            lines.append(f"    <name>\n        {escape_xml(c.name)}\n    </name>")
        if "description" in props:
            desc = self.augmented_description(c)
            if desc:
                lines.append(f"    <description>\n        {escape_xml(desc)}\n    </description>")
        if "expressions" in props and c.expressions:
            inner = "\n".join(
                f'        <expression name="{escape_xml(e.name)}">{escape_xml(e.src)}</expression>'
                for e in c.expressions
            )
            lines.append(f"    <expressions>\n{inner}\n    </expressions>")
        if ("images" in props or "gallery" in props) and c.gallery:
            inner = "\n".join(
                f"        <image>\n            <src>{escape_xml(img.src)}</src>\n"
                f"            <alt>{escape_xml(img.alt)}</alt>\n        </image>"
                for img in c.gallery
            )
            lines.append(f"    <images>\n{inner}\n    </images>")
        if "avatar" in props and c.avatar:
            filename = PurePosixPath(c.avatar.split("?")[0]).name
            lines.append(f"    <avatar>{escape_xml(filename)}</avatar>")

        if not lines:
            return ""
        focus_attr = ' focus="true"' if focus else ""
        body = "\n".join(lines)
        return f'<entity id="{escape_xml(c.id)}"{focus_attr}>\n{body}\n</entity>'

    # -------------------------
    # pass 2
    # -------------------------
    def _scalar(self, m: "re.Match[str]") -> str:
        name = m.group(1)
        kind = MacroKind.lookup(name)
        if kind is not None:
            return self._render(kind)

        out = self._dotted(name.lower())
        if out is not None:
            return out

        _log.warning("macro {{%s}} not found", name)
        return m.group(0)

    def _render(self, kind: MacroKind) -> str:
        if kind is MacroKind.CHARACTERS:
            return "\n\n\n\n".join(
                f"{c.name} (ID: {c.id})\n{self.augmented_description(c)}" for c in self.ctx.chat_characters
            )
        if kind is MacroKind.NOTES:
            parts = []
            for n in self.ctx.active_notes:
                if not n.description.strip():
                    continue
                type_attr = f' type="{escape_xml(n.describes)}"' if n.describes else ""
                parts.append(f"<context{type_attr}>{escape_xml(n.description)}</context>")
            return "\n\n".join(parts)
        if kind is MacroKind.PLAYER:
            persona = self.ctx.persona
            if persona is None:
                return ""
            return f"{persona.name}\n{self.augmented_description(persona)}"
        if kind is MacroKind.TIME:
            return self.ctx.clock().strftime("%X")
        if kind is MacroKind.DATE:
            return self.ctx.clock().strftime("%x")
        if kind is MacroKind.RANDOM:
            return str(self.ctx.rng())
        raise ValueError(f"unhandled macro kind: {kind}")

    def _dotted(self, name: str) -> Optional[str]:
        parts = name.split(".")
        if len(parts) != 2:
            return None
        obj, prop = parts

        if obj == MacroKind.PLAYER.value:
            persona = self.ctx.persona
            if persona is None:
                return None
            if prop == "name":
                return persona.name or ""
            if prop == "description":
                return persona.description or ""
            return None

        target = self.ctx.find_character(obj)
        if target is None:
            return None
        if prop == "name":
            return target.name or ""
        if prop == "description":
            return target.description or ""
        if prop == "images":
            if not target.gallery:
                return ""
            imgs = "".join(
                f'<image src="/data/characters/{target.id}/images/{img.src}" alt="{escape_xml(img.alt)}" />'
                for img in target.gallery
            )
            return f"<images>{imgs}</images>"
        return None


def expand_macros(template: Optional[str], context: MacroContext) -> str:
    return MacroEngine(context).expand(template)
