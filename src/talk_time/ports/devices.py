from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class InputDevice:
    id: str
    label: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "label": self.label}


class DeviceListerPort(Protocol):
    async def list_devices(self) -> list[InputDevice]: ...
