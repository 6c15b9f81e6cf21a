from dataclasses import dataclass

from fastapi import Request


@dataclass(frozen=True)
class RequestContext:
    user_id: str | None
    role: str | None
    groups: frozenset[str] | None
    is_admin: bool
    trace_id: str

    @property
    def operator(self) -> str:
        return self.user_id or "anonymous"


def build_request_context(
    *,
    user_id: str | None,
    role: str | None,
    groups: list[str] | None,
    is_admin: bool,
    trace_id: str,
) -> RequestContext:
    return RequestContext(
        user_id=user_id,
        role=role,
        groups=frozenset(groups) if groups is not None else None,
        is_admin=is_admin,
        trace_id=trace_id,
    )


def anonymous_context(request: Request) -> RequestContext:
    return build_request_context(
        user_id=None,
        role=None,
        groups=None,
        is_admin=False,
        trace_id=getattr(request.state, "trace_id", ""),
    )
