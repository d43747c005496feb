from __future__ import annotations

from sqlalchemy import inspect, text

from certmaker import models


def test_init_db_adds_missing_certificate_columns(out_dir) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    with models.engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE certificate (id INTEGER PRIMARY KEY, code TEXT, template_id TEXT, "
                "template_name TEXT, status TEXT, created_at TIMESTAMP)"
            )
        )
    models.init_db()
    columns = {col["name"] for col in inspect(models.engine).get_columns("certificate")}
    assert {"recipient", "fail_code", "fail_detail"} <= columns
    assert "artifact" in inspect(models.engine).get_table_names()
