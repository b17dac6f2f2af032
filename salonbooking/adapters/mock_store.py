"""
In-memory salon store for mock mode and tests.
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ConflictError, InvalidRequestError
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

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_salon_data.json"

TABLES = (
    "categorias",
    "servicos",
    "profissionais",
    "profissionais_servicos",
    "horarios_trabalho",
    "agendamentos",
    "clientes",
)


class InMemoryStore:
    """
    Store that keeps the salon tables as lists of row dicts.

    Rows use the same column names as the remote tables, so the mock JSON
    file doubles as documentation of the schema. Inserting a second active
    appointment with the same professional and start time raises
    ConflictError, mirroring a unique index on the remote table.
    """

    def __init__(
        self,
        data: Dict[str, List[Dict[str, Any]]] | None = None,
        timezone: str = "America/Sao_Paulo",
        enforce_unique_start: bool = True,
    ):
        self.timezone = timezone
        self.enforce_unique_start = enforce_unique_start
        self.tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in TABLES}
        for name, rows in (data or {}).items():
            self.tables[name] = copy.deepcopy(rows)

    @classmethod
    def from_json(cls, data_file: Path | None = None, timezone: str = "America/Sao_Paulo") -> "InMemoryStore":
        """Load mock tables from a JSON file (defaults to the bundled sample salon)."""
        path = data_file or DEFAULT_DATA_FILE
        if not path.exists():
            raise FileNotFoundError(f"Mock data file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        return cls(data=data, timezone=timezone)

    # Reads

    def list_categories(self) -> List[Category]:
        rows = sorted(self.tables["categorias"], key=lambda r: r.get("nome", ""))
        return [Category.from_record(row) for row in rows]

    def list_services(self, category_id: str | None = None) -> List[Service]:
        rows = [
            row for row in self.tables["servicos"]
            if category_id is None or str(row.get("categoria_id")) == str(category_id)
        ]
        rows.sort(key=lambda r: r.get("nome", ""))
        return [Service.from_record(row) for row in rows]

    def get_service(self, service_id: str) -> Service:
        for row in self.tables["servicos"]:
            if str(row["id"]) == str(service_id):
                return Service.from_record(row)
        raise InvalidRequestError(f"Unknown service: {service_id}")

    def list_professionals(self, service_id: str) -> List[Professional]:
        linked = {
            str(link["profissional_id"])
            for link in self.tables["profissionais_servicos"]
            if str(link["servico_id"]) == str(service_id)
        }
        return [
            Professional.from_record(row)
            for row in self.tables["profissionais"]
            if str(row["id"]) in linked
        ]

    def get_working_hours(self, professional_id: str, weekday: int) -> Optional[WorkingHours]:
        for row in self.tables["horarios_trabalho"]:
            if str(row["profissional_id"]) == str(professional_id) and int(row["dia_semana"]) == weekday:
                return WorkingHours.from_record(row)
        return None

    def list_appointments(
        self,
        professional_id: str,
        day_start: DateTime,
        day_end: DateTime,
    ) -> List[Appointment]:
        appointments: List[Appointment] = []
        for row in self.tables["agendamentos"]:
            if str(row.get("profissional_id")) != str(professional_id):
                continue
            if row.get("status") == AppointmentStatus.CANCELLED.value:
                continue

            try:
                appointment = Appointment.from_record(row, self.timezone)
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping malformed appointment row %s: %s", row.get("id"), exc)
                continue

            if appointment.start <= day_end and appointment.end > day_start:
                appointments.append(appointment)

        appointments.sort(key=lambda a: a.start)
        return appointments

    # Writes

    def insert_appointment(
        self,
        professional_id: str,
        service_id: str,
        client: ClientInfo,
        start: DateTime,
        end: DateTime,
    ) -> Appointment:
        if self.enforce_unique_start and self._has_active_start(professional_id, start):
            raise ConflictError(
                f"Professional {professional_id} already has an appointment at {start.to_iso8601_string()}"
            )

        row = {
            "id": uuid.uuid4().hex,
            "servico_id": service_id,
            "profissional_id": professional_id,
            "nome_cliente": client.name,
            "telefone_cliente": client.phone,
            "data_hora_inicio": start.to_iso8601_string(),
            "data_hora_fim": end.to_iso8601_string(),
            "status": AppointmentStatus.CONFIRMED.value,
        }
        self.tables["agendamentos"].append(row)
        return Appointment.from_record(row, self.timezone)

    def _has_active_start(self, professional_id: str, start: DateTime) -> bool:
        for row in self.tables["agendamentos"]:
            if str(row.get("profissional_id")) != str(professional_id):
                continue
            if row.get("status") == AppointmentStatus.CANCELLED.value:
                continue
            if pendulum.parse(row["data_hora_inicio"]) == start:
                return True
        return False

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        row = self._find_appointment_row(appointment_id)
        return Appointment.from_record(row, self.timezone) if row else None

    def find_client_appointment(self, appointment_id: str, phone: str) -> Optional[Appointment]:
        row = self._find_appointment_row(appointment_id)
        if row is None or row.get("telefone_cliente") != phone:
            return None
        return Appointment.from_record(row, self.timezone)

    def cancel_appointment(self, appointment_id: str, reason: str) -> Appointment:
        return self._update_appointment(
            appointment_id,
            {"status": AppointmentStatus.CANCELLED.value, "cancelamento_motivo": reason},
        )

    def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        return self._update_appointment(appointment_id, {"status": status.value})

    def _find_appointment_row(self, appointment_id: str) -> Optional[Dict[str, Any]]:
        for row in self.tables["agendamentos"]:
            if str(row.get("id")) == str(appointment_id):
                return row
        return None

    def _update_appointment(self, appointment_id: str, changes: Dict[str, Any]) -> Appointment:
        row = self._find_appointment_row(appointment_id)
        if row is None:
            raise InvalidRequestError(f"Unknown appointment: {appointment_id}")
        row.update(changes)
        return Appointment.from_record(row, self.timezone)

    def upsert_client(self, client: ClientInfo) -> None:
        payload = {
            "telefone": client.phone,
            "nome": client.name,
            "data_nascimento": client.birth_date.isoformat() if client.birth_date else None,
        }
        for row in self.tables["clientes"]:
            if row.get("telefone") == client.phone:
                row.update({k: v for k, v in payload.items() if v is not None})
                return
        self.tables["clientes"].append(payload)

    # Account provisioning

    def create_auth_user(self, email: str, password: str) -> str:
        users = self.tables.setdefault("auth_users", [])
        if any(user["email"].lower() == email.lower() for user in users):
            raise ConflictError(f"A user with email {email} already exists")
        user_id = str(uuid.uuid4())
        users.append({"id": user_id, "email": email})
        return user_id

    def delete_auth_user(self, user_id: str) -> None:
        users = self.tables.setdefault("auth_users", [])
        self.tables["auth_users"] = [user for user in users if user["id"] != user_id]

    def insert_professional(self, user_id: str, name: str, email: str, role: str) -> Professional:
        if any(row.get("email", "").lower() == email.lower() for row in self.tables["profissionais"]):
            raise ConflictError(f"A professional with email {email} already exists")
        row = {"id": uuid.uuid4().hex, "user_id": user_id, "nome": name, "email": email, "role": role}
        self.tables["profissionais"].append(row)
        return Professional.from_record(row)
