"""Lab orders and results."""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from .connection import get_connection


@dataclass
class LabOrder:
    id: str
    patient_id: str
    test_names: list[str] = field(default_factory=list)
    test_codes: list[str] = field(default_factory=list)
    provider_id: str | None = None
    lab_name: str | None = None
    lab_npi: str | None = None
    priority: str = "routine"
    specimen_type: str | None = None
    collection_method: str | None = None
    collection_date: str | None = None
    notes: str | None = None
    status: str = "pending"
    order_date: str | None = None
    patient_name: str = "Unknown Patient"


@dataclass
class LabResult:
    id: str
    patient_id: str
    lab_order_id: str | None = None
    test_name: str | None = None
    test_code: str | None = None
    result_value: str | None = None
    reference_range: str | None = None
    units: str | None = None
    abnormal_flag: str | None = None
    result_date: str | None = None
    status: str = "final"
    notes: str | None = None
    patient_name: str = "Unknown Patient"


class LabRepository:
    """Repository for lab orders and results."""

    ORDER_STATUSES = ["pending", "sent", "collected", "resulted", "cancelled"]

    def list_orders(self, status: str | None = None) -> list[LabOrder]:
        """Lab orders newest first, optionally filtered by status."""
        conn = get_connection()
        cursor = conn.cursor()
        query = """
            SELECT o.*, p.first_name, p.last_name
            FROM lab_orders o
            LEFT JOIN patients p ON p.id = o.patient_id
        """
        params: list = []
        if status:
            query += " WHERE o.status = ?"
            params.append(status)
        query += " ORDER BY o.order_date DESC"
        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_order(row) for row in rows]

    def list_results(self) -> list[LabResult]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT r.*, p.first_name, p.last_name
            FROM lab_results r
            LEFT JOIN patients p ON p.id = r.patient_id
            ORDER BY r.result_date DESC
        """)
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_result(row) for row in rows]

    def count_orders_by_status(self) -> dict[str, int]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT status, COUNT(*) AS n FROM lab_orders GROUP BY status")
        counts = {row["status"]: row["n"] for row in cursor.fetchall()}
        conn.close()
        return {status: counts.get(status, 0) for status in ("pending", "sent", "collected", "resulted")}

    def create_order(self, order: LabOrder) -> LabOrder:
        """Create a pending lab order dated now."""
        conn = get_connection()
        cursor = conn.cursor()
        order.id = order.id or str(uuid.uuid4())
        order.status = "pending"
        order.order_date = datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO lab_orders (
                id, patient_id, provider_id, lab_name, lab_npi, test_names, test_codes,
                priority, specimen_type, collection_method, notes, status, order_date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            order.id, order.patient_id, order.provider_id, order.lab_name, order.lab_npi,
            json.dumps(order.test_names), json.dumps(order.test_codes), order.priority,
            order.specimen_type, order.collection_method, order.notes, order.status,
            order.order_date
        ))
        conn.commit()
        conn.close()
        return order

    def update_order(self, order_id: str, status: str, collection_date: str | None = None) -> bool:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE lab_orders SET status = ?, collection_date = ?, updated_at = ? WHERE id = ?
        """, (status, collection_date, datetime.now().isoformat(), order_id))
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    def create_result(self, result: LabResult) -> LabResult:
        conn = get_connection()
        cursor = conn.cursor()
        result.id = result.id or str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO lab_results (
                id, patient_id, lab_order_id, test_name, test_code, result_value,
                reference_range, units, abnormal_flag, result_date, status, notes
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            result.id, result.patient_id, result.lab_order_id, result.test_name,
            result.test_code, result.result_value, result.reference_range, result.units,
            result.abnormal_flag, result.result_date, result.status, result.notes
        ))
        conn.commit()
        conn.close()
        return result

    def update_result(self, result_id: str, status: str) -> bool:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE lab_results SET status = ?, updated_at = ? WHERE id = ?",
            (status, datetime.now().isoformat(), result_id)
        )
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    # Private helpers

    def _patient_name(self, row) -> str:
        if row["first_name"] is None:
            return "Unknown Patient"
        return f"{row['first_name']} {row['last_name']}"

    def _row_to_order(self, row) -> LabOrder:
        return LabOrder(
            id=row["id"],
            patient_id=row["patient_id"],
            test_names=json.loads(row["test_names"]) if row["test_names"] else [],
            test_codes=json.loads(row["test_codes"]) if row["test_codes"] else [],
            provider_id=row["provider_id"],
            lab_name=row["lab_name"] or "Unknown Lab",
            lab_npi=row["lab_npi"],
            priority=row["priority"] or "routine",
            specimen_type=row["specimen_type"],
            collection_method=row["collection_method"],
            collection_date=row["collection_date"],
            notes=row["notes"],
            status=row["status"] or "pending",
            order_date=row["order_date"],
            patient_name=self._patient_name(row),
        )

    def _row_to_result(self, row) -> LabResult:
        return LabResult(
            id=row["id"],
            patient_id=row["patient_id"],
            lab_order_id=row["lab_order_id"],
            test_name=row["test_name"],
            test_code=row["test_code"],
            result_value=row["result_value"],
            reference_range=row["reference_range"],
            units=row["units"],
            abnormal_flag=row["abnormal_flag"],
            result_date=row["result_date"],
            status=row["status"] or "final",
            notes=row["notes"],
            patient_name=self._patient_name(row),
        )
