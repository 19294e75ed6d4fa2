"""Request-model building blocks shared by the routers."""
from typing import Annotated, ClassVar

from pydantic import AfterValidator, BaseModel, model_validator


def _normalise_email(value: str) -> str:
    value = value.strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("invalid email address")
    return value


Email = Annotated[str, AfterValidator(_normalise_email)]


class PatchModel(BaseModel):
    """Partial update body.

    Every field may be left out, but the ones named in ``not_null`` back
    NOT NULL columns and cannot be sent as an explicit ``null``.
    """

    not_null: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_nulls(self):
        nulled = [name for name in self.not_null if name in self.model_fields_set and getattr(self, name) is None]
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self
