from __future__ import annotations

from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class FormElement:
    name: str
    type: str = "text"
    placeholder: str = ""
    value: str | None = None
    required: bool = False
    id: str | None = None
    target: tuple[str, ...] = ()


@dataclass(frozen=True)
class LoginForm:
    """Declarative description of the fields a backend needs to be configured."""

    elements: tuple[FormElement, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, object]:
        rendered: list[dict[str, object]] = []
        for element in self.elements:
            payload = {k: v for k, v in asdict(element).items() if v not in (None, "", (), False)}
            if element.target:
                payload["target"] = list(element.target)
            rendered.append(payload)
        return {"elements": rendered}
