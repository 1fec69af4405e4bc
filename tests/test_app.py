import re

from models import db, Item, Loan, LoanStatus


def test_import_loan_and_return(client, app):
    resp = client.post('/api/items/bulk', json={
        'user': 'admin',
        'items': [{'barcode': 'X1', 'item_name': 'Denim Jacket', 'brand': 'Levi', 'price': 250000}],
    })
    assert resp.status_code == 200
    assert resp.get_json()['stats'] == {'added': 1, 'updated': 0}

    resp = client.post('/api/loan', json={
        'items': ['X1'],
        'borrower_name': 'Test',
        'inputter_name': 'admin',
        'loan_period_days': 21,
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert re.fullmatch(r'INV-\d{8}-\d{3}', body['invoice_no'])
    assert body['data']['total_items'] == 1
    assert body['data']['items'][0]['item_name'] == 'Denim Jacket'
    loan_id = body['transaction_id']

    db.session.expire_all()
    assert Item.query.filter_by(barcode='X1').one().status == 'On Loan'

    resp = client.get('/api/loans/active')
    active = resp.get_json()['data']
    assert [entry['invoice_no'] for entry in active] == [body['invoice_no']]
    assert [line['barcode'] for line in active[0]['items']] == ['X1']

    resp = client.post('/api/return', json={'barcode': 'X1', 'user': 'admin'})
    assert resp.status_code == 200
    assert resp.get_json()['data']['status'] == 'Returned'

    db.session.expire_all()
    assert db.session.get(Loan, loan_id).status == LoanStatus.COMPLETED
    assert Item.query.filter_by(barcode='X1').one().status == 'Available'
    assert client.get(f'/api/loans/{loan_id}').get_json()['data']['status'] == 'Completed'
    assert client.get('/api/loans/active').get_json()['count'] == 0


def test_error_responses_carry_status_and_kind(client, add_items):
    add_items('A', 'B')

    assert client.post('/api/scan', json={'barcode': 'A'}).status_code == 200
    resp = client.post('/api/scan', json={'barcode': 'A'})
    assert resp.status_code == 409
    assert resp.get_json() == {
        'success': False,
        'error': 'already_scanned',
        'message': 'Item A has already been scanned.',
    }

    resp = client.post('/api/scan', json={'barcode': 'nope'})
    assert resp.status_code == 404
    assert resp.get_json()['error'] == 'not_found'

    resp = client.post('/api/return', json={'barcode': 'B'})
    assert resp.status_code == 404
    assert resp.get_json()['error'] == 'not_on_loan'

    resp = client.post('/api/loan', json={'items': ['A'], 'borrower_name': 'Bob'})
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'item_unavailable'

    resp = client.post('/api/loan', json={'items': 'A', 'borrower_name': 'Bob'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'invalid_request'

    resp = client.post('/api/loan', json={'items': ['B'], 'borrower_name': 'Bob', 'loan_period_days': 'soon'})
    assert resp.status_code == 400


def test_bulk_return_always_answers_200(client, add_items):
    add_items('A', 'B')
    client.post('/api/loan', json={'items': ['A'], 'borrower_name': 'Bob'})

    resp = client.post('/api/return/bulk', json={'barcodes': ['A', 'B'], 'user': 'admin'})
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['returned_count'] == 1
    assert data['not_found'] == ['B']
    assert len(data['completed_invoices']) == 1

    resp = client.post('/api/return/bulk', json={'barcodes': 'A'})
    assert resp.status_code == 200
    assert resp.get_json()['data']['returned_count'] == 0


def test_delete_item_on_loan_is_refused(client, add_items):
    add_items('A')
    client.post('/api/loan', json={'items': ['A'], 'borrower_name': 'Bob'})

    resp = client.delete('/api/items/A')
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'item_on_loan'

    client.post('/api/return', json={'barcode': 'A'})
    assert client.delete('/api/items/A').status_code == 200
    assert client.get('/api/items/A').status_code == 404


def test_borrower_endpoints(client, add_items):
    add_items('A')
    resp = client.post('/api/borrowers', json={'nik': '3201', 'name': 'Dewi'})
    borrower_id = resp.get_json()['data']['id']

    resp = client.post('/api/loan', json={'items': ['A'], 'borrower_id': borrower_id})
    assert resp.get_json()['data']['borrower_name'] == 'Dewi'
    assert client.get('/api/borrowers').get_json()['count'] == 1

    assert client.delete(f'/api/borrowers/{borrower_id}').status_code == 200
    assert client.get(f'/api/borrowers/{borrower_id}').status_code == 404


def test_read_endpoints(client, add_items):
    add_items('A', 'B')
    client.post('/api/scan', json={'barcode': 'B', 'user': 'alice'})

    health = client.get('/api/health')
    assert health.status_code == 200
    assert health.get_json()['status'] == 'healthy'
    assert health.headers['X-Content-Type-Options'] == 'nosniff'

    stats = client.get('/api/stats').get_json()['data']
    assert stats == {'total': 2, 'available': 1, 'on_loan': 0, 'scanned': 1}

    available = client.get('/api/items/available').get_json()
    assert [item['barcode'] for item in available['data']] == ['A']
    assert client.get('/api/items?limit=1').get_json()['count'] == 1
    assert client.get('/api/items?limit=zero').status_code == 400

    logs = client.get('/api/logs').get_json()['data']
    assert logs[0]['action_type'] == 'SCAN'
    assert logs[0]['user_name'] == 'alice'

    reset = client.post('/api/scan/reset', json={})
    assert reset.get_json()['cleared'] == 1
    assert client.get('/api/history').get_json()['count'] == 0
    assert client.get('/api/loans/overdue').get_json()['count'] == 0
