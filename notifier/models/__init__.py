# notifier/models/__init__.py
from .storage import (
    ensure_db,
    get_conn,
    transaction,
    iso,
    iso_now,
    parse_iso,
    utcnow,
)
from .bookings import insert_booking, get_booking
from .templates import insert_template, get_template
from .tenants import upsert_phone_mapping, get_tenant_for_phone_number_id
