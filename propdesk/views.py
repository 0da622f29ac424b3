"""Per-role views over the request list."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .maintenance import RequestStore
from .models import MaintenanceRequest, RequestStatus, User, UserRole
from .users import UserStore

STATUS_FILTER_ALL = "all"
STATUS_FILTERS: Tuple[str, ...] = (STATUS_FILTER_ALL,) + tuple(status.value for status in RequestStatus)


@dataclass(frozen=True)
class RequestStats:
    total: int
    pending: int
    assigned: int
    in_progress: int
    completed: int
    approved: int
    rejected: int


def compute_stats(requests: Sequence[MaintenanceRequest]) -> RequestStats:
    counts = {status: 0 for status in RequestStatus}
    for request in requests:
        counts[request.status] += 1
    return RequestStats(
        total=len(requests),
        pending=counts[RequestStatus.PENDING],
        assigned=counts[RequestStatus.ASSIGNED],
        in_progress=counts[RequestStatus.IN_PROGRESS],
        completed=counts[RequestStatus.COMPLETED],
        approved=counts[RequestStatus.APPROVED],
        rejected=counts[RequestStatus.REJECTED],
    )


def requests_for_tenant(requests: Iterable[MaintenanceRequest], tenant: User) -> List[MaintenanceRequest]:
    return [request for request in requests if request.tenant_id == tenant.id]


def requests_for_manager(requests: Iterable[MaintenanceRequest], manager: User) -> List[MaintenanceRequest]:
    return [request for request in requests if request.assigned_to == manager.id]


def filter_by_status(
    requests: Iterable[MaintenanceRequest], status_filter: str = STATUS_FILTER_ALL
) -> List[MaintenanceRequest]:
    """Return requests whose status equals ``status_filter``; ``"all"`` keeps everything."""

    if status_filter not in STATUS_FILTERS:
        raise ValueError(f"Unknown status filter '{status_filter}'")
    if status_filter == STATUS_FILTER_ALL:
        return list(requests)
    return [request for request in requests if request.status.value == status_filter]


@dataclass(frozen=True)
class TenantDashboard:
    user: User
    requests: Tuple[MaintenanceRequest, ...]
    stats: RequestStats

    @property
    def awaiting_review(self) -> Tuple[MaintenanceRequest, ...]:
        return tuple(r for r in self.requests if r.status == RequestStatus.COMPLETED)


@dataclass(frozen=True)
class AdminDashboard:
    user: User
    requests: Tuple[MaintenanceRequest, ...]
    stats: RequestStats
    status_filter: str
    managers: Tuple[User, ...]

    def manager_name(self, manager_id: Optional[str]) -> str:
        for manager in self.managers:
            if manager.id == manager_id:
                return manager.name
        return "Unknown"


@dataclass(frozen=True)
class ManagerDashboard:
    user: User
    requests: Tuple[MaintenanceRequest, ...]
    stats: RequestStats


Dashboard = Union[TenantDashboard, AdminDashboard, ManagerDashboard]


def _newest_first(requests: Iterable[MaintenanceRequest]) -> Tuple[MaintenanceRequest, ...]:
    return tuple(sorted(requests, key=lambda request: request.created_at, reverse=True))


def build_tenant_dashboard(
    user: User, requests: RequestStore, users: UserStore, status_filter: str
) -> TenantDashboard:
    own = requests_for_tenant(requests.list(), user)
    return TenantDashboard(user=user, requests=_newest_first(own), stats=compute_stats(own))


def build_admin_dashboard(
    user: User, requests: RequestStore, users: UserStore, status_filter: str
) -> AdminDashboard:
    everything = requests.list()
    return AdminDashboard(
        user=user,
        requests=tuple(filter_by_status(everything, status_filter)),
        stats=compute_stats(everything),
        status_filter=status_filter,
        managers=tuple(users.list_by_role(UserRole.PROPERTY_MANAGER)),
    )


def build_manager_dashboard(
    user: User, requests: RequestStore, users: UserStore, status_filter: str
) -> ManagerDashboard:
    assigned = requests_for_manager(requests.list(), user)
    return ManagerDashboard(user=user, requests=tuple(assigned), stats=compute_stats(assigned))


DashboardBuilder = Callable[[User, RequestStore, UserStore, str], Dashboard]

DASHBOARD_BUILDERS: Dict[UserRole, DashboardBuilder] = {
    UserRole.TENANT: build_tenant_dashboard,
    UserRole.ADMIN: build_admin_dashboard,
    UserRole.PROPERTY_MANAGER: build_manager_dashboard,
}


def build_dashboard(
    user: User,
    requests: RequestStore,
    users: UserStore,
    *,
    status_filter: str = STATUS_FILTER_ALL,
) -> Dashboard:
    return DASHBOARD_BUILDERS[user.role](user, requests, users, status_filter)


__all__ = [
    "AdminDashboard",
    "Dashboard",
    "ManagerDashboard",
    "RequestStats",
    "STATUS_FILTERS",
    "STATUS_FILTER_ALL",
    "TenantDashboard",
    "build_dashboard",
    "compute_stats",
    "filter_by_status",
    "requests_for_manager",
    "requests_for_tenant",
]
