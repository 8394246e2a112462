"""
Remote table API endpoints.

Provides endpoints for:
- GET    /api/tables/<table>               - Select rows (filter/order/limit)
- POST   /api/tables/<table>               - Insert one row
- PATCH  /api/tables/<table>/<id>          - Update the given fields of one row
- DELETE /api/tables/<table>/<id>          - Delete one row
- DELETE /api/tables/<table>?<col>=eq.<v>   - Delete rows matching equality filters
- GET    /api/tables/<table>/changes       - Server-Sent Events change feed

Select query parameters:
- order: column to sort by (default created_at where present)
- desc: boolean, sort descending (default false)
- limit: int, max rows
- <column>=<op>.<value>: filter, op one of eq, gte, lte

Row policies mirror the dashboard's roles: any signed-in user may read
every table and mark announcements as read; everything else is admin-only.
"""

import logging
from typing import Any, Dict, Optional, Type

from flask import Blueprint, Response, g, jsonify, request
from sqlalchemy import Boolean, DateTime, select
from sqlalchemy.exc import IntegrityError

from opsboard.auth import caller_is_admin, require_session
from opsboard.errors import AuthorizationError, NotFoundError, ValidationError, WriteError
from opsboard.models import (
    TABLES,
    Announcement,
    AnnouncementPriority,
    AppRole,
    Flight,
    FlightStatus,
    SessionLocal,
    UserRole,
    get_session,
)
from opsboard.models.base import Base, utcnow
from opsboard.realtime import stream_events
from opsboard.validation import parse_timestamp

logger = logging.getLogger(__name__)

tables_bp = Blueprint('tables', __name__, url_prefix='/api/tables')

FILTER_OPERATORS = ('eq', 'gte', 'lte')

# Columns clients may never write
READ_ONLY_COLUMNS = {'id', 'created_at'}

# Closed enumerations checked on write
ENUM_COLUMNS = {
    (Announcement.__tablename__, 'priority'): AnnouncementPriority,
    (Flight.__tablename__, 'status'): FlightStatus,
    (UserRole.__tablename__, 'role'): AppRole,
}

# Tables only the auth service may insert into
INSERT_FORBIDDEN = {'profiles'}

# Non-admins may update these columns and nothing else
SELF_SERVICE_UPDATES = {
    Announcement.__tablename__: {'read'},
}


def _model_for(table: str) -> Type[Base]:
    model = TABLES.get(table)
    if model is None:
        raise NotFoundError(f'Unknown table: {table}')
    return model


def _coerce(model: Type[Base], column: str, value: Any) -> Any:
    """Convert a JSON value into what the column stores."""
    col = model.__table__.columns[column]
    if value is None:
        return None
    if isinstance(col.type, DateTime):
        return parse_timestamp(value, column)
    if isinstance(col.type, Boolean) and isinstance(value, str):
        return value.lower() == 'true'
    enum_cls = ENUM_COLUMNS.get((model.__tablename__, column))
    if enum_cls is not None:
        try:
            return enum_cls(value).value
        except ValueError:
            raise ValidationError(column, f'Invalid {column}: {value}')
    return value


def _writable_fields(model: Type[Base], payload: Optional[dict]) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError('body', 'Invalid JSON')

    fields = {}
    for name, value in payload.items():
        if name in READ_ONLY_COLUMNS or name not in model.__table__.columns:
            raise ValidationError(name, f'Column not writable: {name}')
        fields[name] = _coerce(model, name, value)
    return fields


def _check_write(table: str, fields: Optional[Dict[str, Any]] = None) -> None:
    if caller_is_admin():
        return
    allowed = SELF_SERVICE_UPDATES.get(table)
    if fields is not None and allowed and set(fields) <= allowed:
        return
    raise AuthorizationError('Forbidden: Admin access required', status_code=403)


@tables_bp.route('/<table>', methods=['GET'])
@require_session
def select_rows(table: str):
    """Select rows with optional filters, ordering and limit."""
    model = _model_for(table)
    columns = model.__table__.columns

    stmt = select(model)

    for name, raw in request.args.items():
        if name not in columns:
            continue
        op, _, value = raw.partition('.')
        if op not in FILTER_OPERATORS:
            raise ValidationError(name, f'Unsupported filter operator: {op}')
        column = columns[name]
        value = _coerce(model, name, value)
        if op == 'eq':
            stmt = stmt.where(column == value)
        elif op == 'gte':
            stmt = stmt.where(column >= value)
        else:
            stmt = stmt.where(column <= value)

    order = request.args.get('order') or ('created_at' if 'created_at' in columns else None)
    if order:
        if order not in columns:
            raise ValidationError('order', f'Unknown column: {order}')
        descending = request.args.get('desc', 'false').lower() == 'true'
        stmt = stmt.order_by(columns[order].desc() if descending else columns[order].asc())

    limit = request.args.get('limit')
    if limit:
        try:
            stmt = stmt.limit(max(0, int(limit)))
        except ValueError:
            raise ValidationError('limit', 'Limit must be an integer')

    with SessionLocal() as session:
        rows = [obj.to_dict() for obj in session.scalars(stmt)]

    return jsonify({
        'rows': rows,
        'count': len(rows),
        'timestamp': utcnow().isoformat(),
    })


@tables_bp.route('/<table>', methods=['POST'])
@require_session
def insert_row(table: str):
    """Insert one row and return it."""
    model = _model_for(table)
    if table in INSERT_FORBIDDEN:
        raise AuthorizationError(f'Rows in {table} are managed by the auth service')
    _check_write(table)

    fields = _writable_fields(model, request.get_json(silent=True))
    if model is Announcement:
        fields.setdefault('created_by', g.user_id)

    try:
        with get_session() as session:
            obj = model(**fields)
            session.add(obj)
            session.flush()
            row = obj.to_dict()
    except IntegrityError as e:
        logger.warning(f'Insert into {table} rejected: {e.orig}')
        raise WriteError(f'Insert into {table} violates a constraint')

    logger.info(f'Inserted {table} row {row.get("id")}')
    return jsonify({'row': row}), 201


@tables_bp.route('/<table>/<record_id>', methods=['PATCH'])
@require_session
def update_row(table: str, record_id: str):
    """Update only the fields sent; no merge beyond them."""
    model = _model_for(table)
    fields = _writable_fields(model, request.get_json(silent=True))
    _check_write(table, fields)

    try:
        with get_session() as session:
            obj = session.get(model, record_id)
            if obj is None:
                raise NotFoundError(f'No {table} row with id {record_id}')
            for name, value in fields.items():
                setattr(obj, name, value)
            session.flush()
            row = obj.to_dict()
    except IntegrityError as e:
        logger.warning(f'Update of {table} {record_id} rejected: {e.orig}')
        raise WriteError(f'Update of {table} violates a constraint')

    logger.info(f'Updated {table} row {record_id}: {sorted(fields)}')
    return jsonify({'row': row})


@tables_bp.route('/<table>/<record_id>', methods=['DELETE'])
@require_session
def delete_row(table: str, record_id: str):
    """Delete one row by identifier."""
    model = _model_for(table)
    if table in INSERT_FORBIDDEN:
        raise AuthorizationError(f'Rows in {table} are managed by the auth service')
    _check_write(table)

    with get_session() as session:
        obj = session.get(model, record_id)
        if obj is None:
            raise NotFoundError(f'No {table} row with id {record_id}')
        session.delete(obj)

    logger.info(f'Deleted {table} row {record_id}')
    return '', 204


@tables_bp.route('/<table>/changes', methods=['GET'])
@require_session
def table_changes(table: str):
    """Stream change events for one table as Server-Sent Events."""
    _model_for(table)
    logger.info(f'Change stream opened on {table} for {g.user_id}')
    return Response(
        stream_events(table),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )


@tables_bp.route('/<table>', methods=['DELETE'])
@require_session
def delete_matching(table: str):
    """
    Delete every row matching equality filters.

    At least one filter is required so a bare DELETE can never empty a table.
    """
    model = _model_for(table)
    if table in INSERT_FORBIDDEN:
        raise AuthorizationError(f'Rows in {table} are managed by the auth service')
    _check_write(table)

    columns = model.__table__.columns
    stmt = select(model)
    filtered = False
    for name, raw in request.args.items():
        if name not in columns:
            continue
        op, _, value = raw.partition('.')
        if op != 'eq':
            raise ValidationError(name, 'Only eq filters are allowed on delete')
        stmt = stmt.where(columns[name] == _coerce(model, name, value))
        filtered = True

    if not filtered:
        raise ValidationError('filter', 'Delete requires at least one filter')

    with get_session() as session:
        rows = list(session.scalars(stmt))
        for obj in rows:
            session.delete(obj)

    logger.info(f'Deleted {len(rows)} {table} rows')
    return jsonify({'deleted': len(rows)})
