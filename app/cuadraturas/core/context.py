from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    uid: str
    email: str
    role: str | None
    display_name: str | None = None
    store_id: str | None = None
    trace_id: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.email


def build_actor(
    *,
    uid: str,
    email: str,
    role: str | None,
    display_name: str | None,
    store_id: str | None,
    trace_id: str,
) -> Actor:
    return Actor(
        uid=uid,
        email=email,
        role=role,
        display_name=display_name,
        store_id=store_id,
        trace_id=trace_id,
    )
