from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session as DBSession

from app.db import SessionLocal
from app.db_models import SessionDB
from app.models.session import SessionCreateRequest

SESSION_HISTORY_LIMIT = 20


class SessionStore:
    """Session persistence: indexed columns plus a JSON payload for module outputs.

    Writes are field-level and last-writer-wins per field: ``update_status``
    writes the status columns and ``set_output`` merges one module into the
    stored outputs, so concurrent writers to different modules do not clobber
    each other.
    """

    def __init__(self, session_factory: Callable[[], DBSession] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def create_session(self, payload: SessionCreateRequest, user_id: str) -> dict:
        session_id = str(uuid4())
        with self._session_factory() as db:
            row = SessionDB(
                session_id=session_id,
                user_id=str(user_id),
                idea_text=payload.ideaText.strip(),
                domain_hint=payload.domainHint.value,
                tone_preference=payload.tonePreference.value,
                status="created",
                created_at=datetime.now(timezone.utc),
                data_json={"outputs": {}},
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._row_to_session_dict(row)

    def get_session(self, session_id: str) -> dict | None:
        with self._session_factory() as db:
            row = self._get_session_row(db, session_id)
            if row is None:
                return None
            return self._row_to_session_dict(row)

    def get_sessions_for_user(self, user_id: str, limit: int = SESSION_HISTORY_LIMIT) -> list[dict]:
        with self._session_factory() as db:
            stmt = (
                select(SessionDB)
                .where(SessionDB.user_id == str(user_id))
                .order_by(SessionDB.created_at.desc())
                .limit(limit)
            )
            rows = db.execute(stmt).scalars().all()
            return [
                _jsonify(
                    {
                        "sessionId": row.session_id,
                        "ideaText": row.idea_text,
                        "domainHint": row.domain_hint,
                        "status": row.status,
                        "createdAt": row.created_at,
                        "completedAt": row.completed_at,
                    }
                )
                for row in rows
            ]

    def session_belongs_to_user(self, session_id: str, user_id: str) -> bool:
        with self._session_factory() as db:
            row = self._get_session_row(db, session_id)
            if row is None:
                return False
            return str(row.user_id) == str(user_id)

    def update_status(
        self,
        session_id: str,
        status: str,
        *,
        error: str | None = None,
        completed_at: datetime | str | None = None,
    ) -> dict | None:
        """Write status columns only; outputs are never touched here.

        ``error`` is written only when given. ``completed_at`` is kept from the
        first call that sets it.
        """
        with self._session_factory() as db:
            row = self._get_session_row(db, session_id, for_update=True)
            if row is None:
                return None
            row.status = status
            if error is not None:
                row.error = error
            if completed_at is not None and row.completed_at is None:
                row.completed_at = _to_datetime(completed_at)
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._row_to_session_dict(row)

    def set_output(self, session_id: str, module_name: str, value: Any, *, clear_error: bool = False) -> dict | None:
        with self._session_factory() as db:
            row = self._get_session_row(db, session_id, for_update=True)
            if row is None:
                return None
            data = self._read_data(row)
            outputs = dict(data.get("outputs") or {})
            outputs[module_name] = value
            data["outputs"] = _present_outputs(outputs)
            if clear_error:
                row.error = None
            row.data_json = _jsonify(data)
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._row_to_session_dict(row)

    def get_core_outputs(self, session_id: str) -> dict | None:
        session = self.get_session(session_id)
        if session is None:
            return None
        return {
            "sessionId": session["sessionId"],
            "status": session["status"],
            "outputs": session["outputs"],
            "error": session["error"],
        }

    def delete_session(self, session_id: str) -> bool:
        with self._session_factory() as db:
            row = self._get_session_row(db, session_id)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True

    def _get_session_row(self, db: DBSession, session_id: str, for_update: bool = False) -> SessionDB | None:
        return db.get(SessionDB, str(session_id), with_for_update=for_update or None)

    def _read_data(self, row: SessionDB) -> dict:
        data = dict(row.data_json or {})
        data["outputs"] = dict(data.get("outputs") or {})
        return data

    def _row_to_session_dict(self, row: SessionDB) -> dict:
        data = self._read_data(row)
        return _jsonify(
            {
                "sessionId": row.session_id,
                "userId": row.user_id,
                "ideaText": row.idea_text,
                "domainHint": row.domain_hint,
                "tonePreference": row.tone_preference,
                "status": row.status,
                "outputs": data["outputs"],
                "error": row.error,
                "createdAt": row.created_at,
                "updatedAt": row.updated_at,
                "completedAt": row.completed_at,
            }
        )


session_store = SessionStore()


def _present_outputs(outputs: Any) -> dict:
    return {str(key): value for key, value in dict(outputs or {}).items() if value is not None}


def _jsonify(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _jsonify(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonify(item) for item in value]
    return value


def _to_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now(timezone.utc)
