from __future__ import annotations

import datetime
import logging
import os

import click
from flask import Flask, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import BaseConfig, config_by_name
from models import db
from services import (
    ActivityLogService,
    BorrowerService,
    InvalidRequest,
    InventoryService,
    InventoryServiceError,
    ItemStore,
    LoanService,
    ReturnService,
    ScanService,
)


def _load_config(app: Flask, config_name: str | None, test_config: dict | None) -> None:
    resolved_name = config_name or os.environ.get('FLASK_CONFIG', 'development')
    config_cls = config_by_name.get(resolved_name, BaseConfig)
    app.config.from_object(config_cls)
    if test_config:
        app.config.update(test_config)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidRequest('Request body must be a JSON object.')
    return data


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidRequest(f'{name} must be an integer.')
    if value <= 0:
        raise InvalidRequest(f'{name} must be positive.')
    return value


def _optional_int(data: dict, name: str):
    raw = data.get(name)
    if raw in (None, ''):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidRequest(f'{name} must be an integer.')


def create_app(config_name: str | None = None, test_config: dict | None = None):
    if isinstance(config_name, dict) and test_config is None:
        test_config = config_name
        config_name = None
    app = Flask(__name__)
    _load_config(app, config_name, test_config)
    app.logger.setLevel(getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))
    db.init_app(app)

    store = ItemStore()
    activity = ActivityLogService()
    inventory_service = InventoryService(store=store, activity=activity)
    scan_service = ScanService(store=store, activity=activity)
    loan_service = LoanService(store=store, activity=activity)
    return_service = ReturnService(store=store, activity=activity)
    borrower_service = BorrowerService(activity=activity)

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        db.create_all()
        click.echo('Initialized database')

    @app.errorhandler(InventoryServiceError)
    def handle_service_error(exc: InventoryServiceError):
        return jsonify(exc.to_dict()), exc.http_status

    @app.after_request
    def set_security_headers(response):
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('Cache-Control', 'no-store')
        return response

    @app.route('/api/health')
    def health():
        try:
            db.session.execute(text('SELECT 1'))
        except SQLAlchemyError as exc:
            current_app.logger.exception('Health check failed: %s', exc)
            return jsonify({'success': False, 'status': 'unhealthy'}), 503
        return jsonify({
            'success': True,
            'status': 'healthy',
            'timestamp': datetime.datetime.now(datetime.timezone.utc).isoformat(),
        })

    @app.route('/api/stats')
    def stats():
        return jsonify({'success': True, 'data': store.count_by_status()})

    @app.route('/api/items', methods=['GET'])
    def list_items():
        limit = _int_arg('limit', app.config['ITEM_LIST_LIMIT'])
        items = store.list_items(request.args.get('search'), limit)
        return jsonify({'success': True, 'count': len(items), 'data': [i.to_dict() for i in items]})

    @app.route('/api/items/available', methods=['GET'])
    def list_available_items():
        limit = _int_arg('limit', app.config['AVAILABLE_SEARCH_LIMIT'])
        items = store.list_available(request.args.get('search'), limit)
        return jsonify({'success': True, 'count': len(items), 'data': [i.to_dict() for i in items]})

    @app.route('/api/items/bulk', methods=['POST'])
    def import_items():
        data = _json_body()
        rows = data.get('items')
        if not isinstance(rows, list) or not all(isinstance(row, dict) and row.get('barcode') for row in rows):
            raise InvalidRequest('items must be a list of objects with a barcode.')
        result = inventory_service.import_items(rows, actor=data.get('user'))
        return jsonify({'success': True, 'stats': result.to_dict()})

    @app.route('/api/items/<barcode>', methods=['GET'])
    def get_item(barcode: str):
        item = inventory_service.get_item(barcode)
        return jsonify({'success': True, 'data': item.to_dict()})

    @app.route('/api/items/<barcode>', methods=['DELETE'])
    def delete_item(barcode: str):
        data = _json_body()
        inventory_service.delete_item(barcode, actor=data.get('user'))
        return jsonify({'success': True, 'message': 'Item deleted successfully'})

    @app.route('/api/scan', methods=['POST'])
    def scan():
        data = _json_body()
        item = scan_service.scan(data.get('barcode'), actor=data.get('user'))
        return jsonify({'success': True, 'data': item.to_dict()})

    @app.route('/api/scan/reset', methods=['POST'])
    def reset_scans():
        data = _json_body()
        cleared = scan_service.reset(data.get('barcode'), actor=data.get('user'))
        return jsonify({'success': True, 'cleared': cleared})

    @app.route('/api/borrowers', methods=['GET'])
    def list_borrowers():
        borrowers = borrower_service.list()
        return jsonify({'success': True, 'count': len(borrowers), 'data': [b.to_dict() for b in borrowers]})

    @app.route('/api/borrowers', methods=['POST'])
    def upsert_borrower():
        data = _json_body()
        borrower = borrower_service.upsert(
            nik=data.get('nik'),
            name=data.get('name'),
            phone=data.get('phone'),
            position=data.get('position'),
            actor=data.get('user'),
        )
        return jsonify({'success': True, 'data': borrower.to_dict()})

    @app.route('/api/borrowers/<int:borrower_id>', methods=['GET'])
    def get_borrower(borrower_id: int):
        return jsonify({'success': True, 'data': borrower_service.get(borrower_id).to_dict()})

    @app.route('/api/borrowers/<int:borrower_id>', methods=['DELETE'])
    def delete_borrower(borrower_id: int):
        data = _json_body()
        borrower_service.delete(borrower_id, actor=data.get('user'))
        return jsonify({'success': True, 'message': 'Borrower deleted successfully'})

    @app.route('/api/loan', methods=['POST'])
    def create_loan():
        data = _json_body()
        items = data.get('items')
        if not isinstance(items, list):
            raise InvalidRequest('items must be a list of barcodes.')
        loan = loan_service.create_loan(
            items=items,
            borrower_id=_optional_int(data, 'borrower_id'),
            borrower_name=data.get('borrower_name'),
            inputter=data.get('inputter_name'),
            program=data.get('program_name'),
            reason=data.get('loan_reason'),
            loan_period_days=_optional_int(data, 'loan_period_days'),
            signature=data.get('signature_base64'),
        )
        return jsonify({
            'success': True,
            'invoice_no': loan.invoice_no,
            'transaction_id': loan.id,
            'data': loan.to_dict(),
        }), 201

    @app.route('/api/loans/active', methods=['GET'])
    def active_loans():
        loans = loan_service.list_active()
        data = []
        for loan in loans:
            entry = loan.to_dict(with_items=False)
            entry['items'] = [line.to_dict() for line in loan.outstanding_items]
            data.append(entry)
        return jsonify({'success': True, 'count': len(data), 'data': data})

    @app.route('/api/loans/overdue', methods=['GET'])
    def overdue_loans():
        loans = loan_service.list_overdue()
        return jsonify({'success': True, 'count': len(loans), 'data': [l.to_dict() for l in loans]})

    @app.route('/api/loans/<int:loan_id>', methods=['GET'])
    def get_loan(loan_id: int):
        return jsonify({'success': True, 'data': loan_service.get_loan(loan_id).to_dict()})

    @app.route('/api/history', methods=['GET'])
    def history():
        loans = loan_service.history(_int_arg('limit', 50))
        return jsonify({'success': True, 'count': len(loans), 'data': [l.to_dict() for l in loans]})

    @app.route('/api/return', methods=['POST'])
    def return_item():
        data = _json_body()
        line = return_service.return_one(data.get('barcode'), actor=data.get('user'))
        return jsonify({
            'success': True,
            'data': line.to_dict(),
            'message': f'Item {line.barcode} returned successfully',
        })

    @app.route('/api/return/bulk', methods=['POST'])
    def return_bulk():
        data = _json_body()
        barcodes = data.get('barcodes')
        if not isinstance(barcodes, list):
            barcodes = []
        result = return_service.return_bulk(barcodes, actor=data.get('user'))
        return jsonify({'success': True, 'data': result.to_dict()})

    @app.route('/api/logs', methods=['GET'])
    def logs():
        entries = activity.recent(_int_arg('limit', 100))
        return jsonify({'success': True, 'count': len(entries), 'data': [e.to_dict() for e in entries]})

    return app


if __name__ == '__main__':
    application = create_app()
    with application.app_context():
        db.create_all()
    application.run(debug=application.config.get('DEBUG', False))
