import pytest


def _register(flask_app, username):
    client = flask_app.test_client()
    res = client.post('/register', json={'username': username, 'password': 'secret'})
    assert res.status_code == 201
    return client, res.get_json()['player']


def test_register_login_me_logout(client):
    res = client.post('/register', json={'username': 'alice', 'password': 'secret'})
    assert res.status_code == 201
    player = res.get_json()['player']
    assert player['balance'] == '1000.00'

    assert client.post('/logout').status_code == 200
    res = client.get('/me')
    assert res.status_code == 401
    assert res.get_json()['kind'] == 'Unauthorized'

    assert client.post('/login', json={'username': 'alice', 'password': 'wrong'}).status_code == 401
    assert client.post('/login', json={'username': 'alice', 'password': 'secret'}).status_code == 200
    assert client.get('/me').get_json()['player']['username'] == 'alice'


def test_duplicate_username_rejected(client):
    client.post('/register', json={'username': 'alice', 'password': 'secret'})
    res = client.post('/register', json={'username': 'alice', 'password': 'other'})
    assert res.status_code == 400
    assert res.get_json()['kind'] == 'UsernameTaken'


def test_username_taken_is_a_validation_error(flask_app):
    from yahtzee.services.errors import UsernameTaken, ValidationError
    from yahtzee.services.players import register_player
    register_player('alice', 'secret')
    with pytest.raises(ValidationError) as excinfo:
        register_player('alice', 'other')
    assert isinstance(excinfo.value, UsernameTaken)
    assert excinfo.value.status_code == 400


def test_deposit_withdraw_and_summary(flask_app):
    client, _ = _register(flask_app, 'alice')
    res = client.post('/api/players/deposit', json={'amount': '25.50'})
    assert res.status_code == 201
    assert res.get_json()['balance'] == '1025.50'

    res = client.post('/api/players/withdraw', json={'amount': '5000'})
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'InsufficientFunds'

    res = client.post('/api/players/deposit', json={'amount': '-3'})
    assert res.status_code == 400
    assert res.get_json()['kind'] == 'InvalidAmount'

    history = client.get('/api/players/transactions').get_json()
    assert [tx['type'] for tx in history] == ['DEPOSIT', 'DEPOSIT']
    summary = client.get('/api/players/summary').get_json()
    assert summary['deposits'] == '1025.50'
    assert client.get('/api/players/reconcile').get_json()['reconciled'] is True


def test_create_join_and_state(flask_app):
    alice, _ = _register(flask_app, 'alice')
    bob, _ = _register(flask_app, 'bob')

    res = alice.post('/api/matches/create', json={'stake_amount': '100.00', 'max_seats': 2})
    assert res.status_code == 201
    code = res.get_json()['match_code']

    res = bob.post('/api/matches/join', json={'match_code': code.lower()})
    assert res.status_code == 201
    assert res.get_json()['join_order'] == 2

    state = alice.get(f'/api/matches/{code}/state').get_json()
    assert state['status'] == 'WAITING'
    assert state['prize_pool'] == '200.00'
    assert [s['username'] for s in state['seats']] == ['alice', 'bob']


def test_unknown_match_is_404(flask_app):
    alice, _ = _register(flask_app, 'alice')
    assert alice.get('/api/matches/NOPE00/state').status_code == 404
    assert alice.post('/api/matches/join', json={'match_code': 'NOPE00'}).status_code == 404


def test_create_requires_login(client):
    res = client.post('/api/matches/create', json={'stake_amount': '10', 'max_seats': 2})
    assert res.status_code == 401


def test_turn_flow_over_http(flask_app):
    alice, alice_json = _register(flask_app, 'alice')
    bob, _ = _register(flask_app, 'bob')
    code = alice.post('/api/matches/create', json={'stake_amount': '10.00', 'max_seats': 2}).get_json()['match_code']
    bob.post('/api/matches/join', json={'match_code': code})

    res = alice.post(f'/api/matches/{code}/start')
    assert res.status_code == 200
    started = res.get_json()
    assert started['status'] == 'IN_PROGRESS'
    assert started['current_turn_player_id'] == alice_json['id']

    res = bob.post(f'/api/matches/{code}/roll')
    assert res.status_code == 403
    assert res.get_json()['kind'] == 'NotYourTurn'

    res = alice.post(f'/api/matches/{code}/roll')
    assert res.status_code == 200
    rolled = res.get_json()
    assert rolled['roll_count'] == 1
    assert rolled['can_roll_again'] is True

    res = alice.post(f'/api/matches/{code}/roll', json={'keep_mask': [True, True]})
    assert res.status_code == 400
    assert res.get_json()['kind'] == 'InvalidKeepMask'

    suggestions = alice.get(f'/api/matches/{code}/suggestions').get_json()
    assert suggestions and all(s['score'] > 0 for s in suggestions)

    res = alice.post(f'/api/matches/{code}/score', json={'category': 'CHANCE'})
    assert res.status_code == 200
    body = res.get_json()
    assert body['turn']['selected_category'] == 'CHANCE'
    assert body['finished'] is False
    assert body['match']['current_turn_player_id'] != alice_json['id']

    res = alice.post(f'/api/matches/{code}/score', json={'category': 'CHANCE'})
    assert res.status_code == 403


def test_forfeit_and_cancel_over_http(flask_app):
    alice, _ = _register(flask_app, 'alice')
    bob, _ = _register(flask_app, 'bob')
    code = alice.post('/api/matches/create', json={'stake_amount': '10.00', 'max_seats': 2}).get_json()['match_code']
    bob.post('/api/matches/join', json={'match_code': code})
    alice.post(f'/api/matches/{code}/start')

    res = bob.post(f'/api/matches/{code}/forfeit')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'FINISHED'

    res = alice.post(f'/api/matches/{code}/cancel')
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'MatchClosed'
    assert alice.get('/me').get_json()['player']['balance'] == '1010.00'


def test_leave_before_start(flask_app):
    alice, _ = _register(flask_app, 'alice')
    bob, _ = _register(flask_app, 'bob')
    code = alice.post('/api/matches/create', json={'stake_amount': '10.00', 'max_seats': 3}).get_json()['match_code']
    bob.post('/api/matches/join', json={'match_code': code})

    res = bob.post(f'/api/matches/{code}/leave')
    assert res.status_code == 200
    assert res.get_json()['seat_count'] == 1
    assert bob.get('/me').get_json()['player']['balance'] == '1000.00'

    listed = alice.get('/api/matches').get_json()
    assert [m['code'] for m in listed] == [code]
