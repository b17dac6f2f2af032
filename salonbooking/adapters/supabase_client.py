"""
Supabase client for the salon tables (PostgREST) and the auth admin API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests
from pendulum import DateTime

from ..domain.exceptions import ConflictError, DataStoreError, InvalidRequestError
from ..domain.models import (
    Appointment,
    AppointmentStatus,
    Category,
    ClientInfo,
    Professional,
    Service,
    WorkingHours,
)

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class SupabaseClient:
    """
    Client for the salon's Supabase project.

    Reads and writes rows through the PostgREST endpoint (``/rest/v1``) and
    manages login principals through the auth admin endpoint (``/auth/v1``),
    which requires the service-role key.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timezone: str = "America/Sao_Paulo",
        service_role_key: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        """
        Initialize the client.

        Args:
            url: Project URL, e.g. https://xyz.supabase.co
            api_key: Anon (public) key used for table access
            timezone: IANA timezone appointments are converted to
            service_role_key: Optional key for admin calls
            timeout: Per-request timeout in seconds
            session: Optional requests session (tests pass a stub)
        """
        self.url = url.rstrip("/")
        self.rest_url = f"{self.url}/rest/v1"
        self.auth_url = f"{self.url}/auth/v1"
        self.timezone = timezone
        self.timeout = timeout
        self.session = session or requests.Session()
        self._api_key = api_key
        self._service_role_key = service_role_key

    def _headers(self, admin: bool = False, prefer: str | None = None) -> Dict[str, str]:
        key = self._service_role_key if admin else self._api_key
        if admin and not key:
            raise DataStoreError("A service-role key is required for admin operations")

        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Dict[str, str] | None = None,
        json: Any = None,
        admin: bool = False,
        prefer: str | None = None,
    ) -> Any:
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(admin=admin, prefer=prefer),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise DataStoreError(f"Request to {url} failed: {exc}") from exc

        if response.status_code == 409:
            raise ConflictError(self._error_message(response))

        if not 200 <= response.status_code < 300:
            raise DataStoreError(
                f"{method} {url} returned {response.status_code}: {self._error_message(response)}"
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason or "unknown error"

        if isinstance(body, dict):
            if body.get("code") == UNIQUE_VIOLATION:
                return "Slot already taken (unique constraint)"
            return body.get("message") or body.get("msg") or body.get("error_description") or str(body)
        return str(body)

    def _select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        rows = self._request("GET", f"{self.rest_url}/{table}", params=params)
        return rows or []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_categories(self) -> List[Category]:
        rows = self._select("categorias", {"select": "*", "order": "nome"})
        return [Category.from_record(row) for row in rows]

    def list_services(self, category_id: str | None = None) -> List[Service]:
        params = {"select": "*", "order": "nome"}
        if category_id is not None:
            params["categoria_id"] = f"eq.{category_id}"
        rows = self._select("servicos", params)
        return [Service.from_record(row) for row in rows]

    def get_service(self, service_id: str) -> Service:
        """
        Fetch one service.

        Raises:
            InvalidRequestError: If no service has this id
        """
        rows = self._select("servicos", {"select": "*", "id": f"eq.{service_id}"})
        if not rows:
            raise InvalidRequestError(f"Unknown service: {service_id}")
        return Service.from_record(rows[0])

    def list_professionals(self, service_id: str) -> List[Professional]:
        """List professionals linked to a service through ``profissionais_servicos``."""
        rows = self._select(
            "profissionais_servicos",
            {"select": "profissionais(id,nome,email,role,user_id)", "servico_id": f"eq.{service_id}"},
        )
        return [
            Professional.from_record(row["profissionais"])
            for row in rows
            if row.get("profissionais")
        ]

    def get_working_hours(self, professional_id: str, weekday: int) -> Optional[WorkingHours]:
        rows = self._select(
            "horarios_trabalho",
            {
                "select": "profissional_id,dia_semana,hora_inicio,hora_fim",
                "profissional_id": f"eq.{professional_id}",
                "dia_semana": f"eq.{weekday}",
            },
        )
        if not rows:
            return None
        if len(rows) > 1:
            logger.warning(
                "Professional %s has %d working-hours rows for weekday %s; using the first",
                professional_id, len(rows), weekday,
            )
        return WorkingHours.from_record(rows[0])

    def list_appointments(
        self,
        professional_id: str,
        day_start: DateTime,
        day_end: DateTime,
    ) -> List[Appointment]:
        """
        List non-cancelled appointments intersecting [day_start, day_end].
        """
        rows = self._select(
            "agendamentos",
            {
                "select": "*",
                "profissional_id": f"eq.{professional_id}",
                "data_hora_inicio": f"lte.{day_end.to_iso8601_string()}",
                "data_hora_fim": f"gt.{day_start.to_iso8601_string()}",
                "status": f"neq.{AppointmentStatus.CANCELLED.value}",
                "order": "data_hora_inicio",
            },
        )
        return self._parse_appointments(rows)

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        rows = self._select("agendamentos", {"select": "*", "id": f"eq.{appointment_id}"})
        return Appointment.from_record(rows[0], self.timezone) if rows else None

    def find_client_appointment(self, appointment_id: str, phone: str) -> Optional[Appointment]:
        """Look up an appointment by id, only if it was booked with this phone number."""
        rows = self._select(
            "agendamentos",
            {"select": "*", "id": f"eq.{appointment_id}", "telefone_cliente": f"eq.{phone}"},
        )
        return Appointment.from_record(rows[0], self.timezone) if rows else None

    def _parse_appointments(self, rows: List[Dict[str, Any]]) -> List[Appointment]:
        appointments: List[Appointment] = []
        for row in rows:
            try:
                appointments.append(Appointment.from_record(row, self.timezone))
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping malformed appointment row %s: %s", row.get("id"), exc)
        return appointments

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_appointment(
        self,
        professional_id: str,
        service_id: str,
        client: ClientInfo,
        start: DateTime,
        end: DateTime,
    ) -> Appointment:
        """
        Insert a confirmed appointment.

        Raises:
            ConflictError: If the store rejects the row as a duplicate slot
        """
        rows = self._request(
            "POST",
            f"{self.rest_url}/agendamentos",
            json={
                "servico_id": service_id,
                "profissional_id": professional_id,
                "nome_cliente": client.name,
                "telefone_cliente": client.phone,
                "data_hora_inicio": start.to_iso8601_string(),
                "data_hora_fim": end.to_iso8601_string(),
                "status": AppointmentStatus.CONFIRMED.value,
            },
            prefer="return=representation",
        )
        if not rows:
            raise DataStoreError("Appointment insert returned no row")
        return Appointment.from_record(rows[0], self.timezone)

    def cancel_appointment(self, appointment_id: str, reason: str) -> Appointment:
        return self._update_appointment(
            appointment_id,
            {"status": AppointmentStatus.CANCELLED.value, "cancelamento_motivo": reason},
        )

    def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        return self._update_appointment(appointment_id, {"status": status.value})

    def _update_appointment(self, appointment_id: str, changes: Dict[str, Any]) -> Appointment:
        """
        Patch one appointment row.

        Raises:
            InvalidRequestError: If no appointment has this id
        """
        rows = self._request(
            "PATCH",
            f"{self.rest_url}/agendamentos",
            params={"id": f"eq.{appointment_id}"},
            json=changes,
            prefer="return=representation",
        )
        if not rows:
            raise InvalidRequestError(f"Unknown appointment: {appointment_id}")
        return Appointment.from_record(rows[0], self.timezone)

    def upsert_client(self, client: ClientInfo) -> None:
        """Create or update the client record keyed by phone number."""
        payload: Dict[str, Any] = {"telefone": client.phone, "nome": client.name}
        if client.birth_date is not None:
            payload["data_nascimento"] = client.birth_date.isoformat()

        self._request(
            "POST",
            f"{self.rest_url}/clientes",
            params={"on_conflict": "telefone"},
            json=payload,
            prefer="resolution=merge-duplicates",
        )

    # ------------------------------------------------------------------
    # Account provisioning (service-role key)
    # ------------------------------------------------------------------

    def create_auth_user(self, email: str, password: str) -> str:
        """Create a login principal and return its id."""
        data = self._request(
            "POST",
            f"{self.auth_url}/admin/users",
            json={"email": email, "password": password, "email_confirm": False},
            admin=True,
        )
        user = (data or {}).get("user", data) or {}
        user_id = user.get("id")
        if not user_id:
            raise DataStoreError("Auth API did not return a user id")
        return user_id

    def delete_auth_user(self, user_id: str) -> None:
        self._request("DELETE", f"{self.auth_url}/admin/users/{user_id}", admin=True)

    def insert_professional(self, user_id: str, name: str, email: str, role: str) -> Professional:
        rows = self._request(
            "POST",
            f"{self.rest_url}/profissionais",
            json={"user_id": user_id, "nome": name, "email": email, "role": role},
            admin=True,
            prefer="return=representation",
        )
        if not rows:
            raise DataStoreError("Professional insert returned no row")
        return Professional.from_record(rows[0])
