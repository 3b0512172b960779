def _create_and_join(client, capacity, *names):
    code = client.post('/api/sessions', json={'question': 'Q', 'capacity': capacity}).get_json()['code']
    joined = [client.post(f'/api/sessions/{code}/join', json={'display_name': n}).get_json() for n in names]
    return code, joined


def _events(sio_client, name):
    return [pkt['args'][0] for pkt in sio_client.get_received('/ws') if pkt['name'] == name]


def test_socket_connect_and_join(sio_client, client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    sio_client.get_received('/ws')

    code, _ = _create_and_join(client, 2)
    sio_client.emit('join_session', {'code': code.lower()}, namespace='/ws')
    joined = _events(sio_client, 'joined')
    assert joined[0]['room'] == f'session:{code}'
    assert joined[0]['state']['status'] == 'waiting'


def test_join_unknown_session_emits_error(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_session', {'code': 'NOPE99'}, namespace='/ws')
    errors = _events(sio_client, 'session_error')
    assert errors[0]['code'] == 'session_not_found'


def test_room_receives_updates_and_single_reveal(sio_client, client):
    code, (a, b, c) = _create_and_join(client, 2, 'A', 'B', 'C')
    sio_client.emit('join_session', {'code': code, 'handle': c['handle']}, namespace='/ws')
    sio_client.get_received('/ws')

    client.post(f'/api/sessions/{code}/predict', json={'handle': a['handle'], 'content': 'cat'})
    client.post(f'/api/sessions/{code}/predict', json={'handle': b['handle'], 'content': 'dog'})

    received = sio_client.get_received('/ws')
    updates = [p['args'][0] for p in received if p['name'] == 'prediction_update']
    reveals = [p['args'][0] for p in received if p['name'] == 'all_predictions_revealed']
    assert [u['count'] for u in updates] == [1, 2]
    assert len(reveals) == 1
    assert [(r['participant']['display_name'], r['prediction']['content']) for r in reveals[0]['predictions']] == [
        ('A', 'cat'), ('B', 'dog'),
    ]


def test_request_predictions_returns_revealed_payload(sio_client, client):
    code, (a,) = _create_and_join(client, 1, 'A')
    client.post(f'/api/sessions/{code}/predict', json={'handle': a['handle'], 'content': 'cat'})
    sio_client.get_received('/ws')
    sio_client.emit('request_predictions', {'code': code}, namespace='/ws')
    state = _events(sio_client, 'session_state')[0]
    assert state['revealed'] is True
    assert state['predictions'][0]['prediction']['content'] == 'cat'


def test_disconnect_before_predicting_frees_slot(flask_app, sio_client, client):
    code, (a, b) = _create_and_join(client, 3, 'A', 'B')

    from foresight import socketio as _sio
    player_client = _sio.test_client(flask_app, namespace='/ws')
    player_client.emit('join_session', {'code': code, 'handle': a['handle']}, namespace='/ws')

    sio_client.emit('join_session', {'code': code}, namespace='/ws')
    sio_client.get_received('/ws')  # flush

    player_client.disconnect(namespace='/ws')
    updates = _events(sio_client, 'predictor_update')
    assert updates == [{'code': code, 'count': 1, 'total': 3}]
    assert client.get(f'/api/sessions/{code}').get_json()['predictor_count'] == 1


def test_disconnect_after_predicting_keeps_prediction(flask_app, client):
    code, (a, _) = _create_and_join(client, 2, 'A', 'B')
    client.post(f'/api/sessions/{code}/predict', json={'handle': a['handle'], 'content': 'cat'})

    from foresight import socketio as _sio
    player_client = _sio.test_client(flask_app, namespace='/ws')
    player_client.emit('join_session', {'code': code, 'handle': a['handle']}, namespace='/ws')
    player_client.disconnect(namespace='/ws')

    state = client.get(f'/api/sessions/{code}').get_json()
    assert state['predictor_count'] == 2
    assert state['prediction_count'] == 1


def test_explicit_leave_releases_slot(sio_client, client):
    code, (a,) = _create_and_join(client, 2, 'A')
    sio_client.emit('join_session', {'code': code, 'handle': a['handle']}, namespace='/ws')
    sio_client.emit('leave_session', {'code': code}, namespace='/ws')
    left = _events(sio_client, 'left')
    assert left[0]['room'] == f'session:{code}'
    assert client.get(f'/api/sessions/{code}').get_json()['predictor_count'] == 0


def test_reconnect_keeps_predictor_until_last_socket_closes(flask_app, client):
    code, (a, _) = _create_and_join(client, 3, 'A', 'B')

    from foresight import socketio as _sio
    old_socket = _sio.test_client(flask_app, namespace='/ws')
    new_socket = _sio.test_client(flask_app, namespace='/ws')
    old_socket.emit('join_session', {'code': code, 'handle': a['handle']}, namespace='/ws')
    new_socket.emit('join_session', {'code': code, 'handle': a['handle']}, namespace='/ws')

    old_socket.disconnect(namespace='/ws')
    assert client.get(f'/api/sessions/{code}').get_json()['predictor_count'] == 2
    res = client.post(f'/api/sessions/{code}/predict', json={'handle': a['handle'], 'content': 'cat'})
    assert res.status_code == 200

    new_socket.disconnect(namespace='/ws')
    # Submitted, so the prediction outlives the last socket too
    state = client.get(f'/api/sessions/{code}').get_json()
    assert state['predictor_count'] == 2
    assert state['prediction_count'] == 1


def test_last_socket_of_reconnected_predictor_frees_slot(flask_app, client):
    code, (a,) = _create_and_join(client, 2, 'A')

    from foresight import socketio as _sio
    sockets = [_sio.test_client(flask_app, namespace='/ws') for _ in range(2)]
    for sock in sockets:
        sock.emit('join_session', {'code': code, 'handle': a['handle']}, namespace='/ws')
    sockets[0].disconnect(namespace='/ws')
    assert client.get(f'/api/sessions/{code}').get_json()['predictor_count'] == 1
    sockets[1].disconnect(namespace='/ws')
    assert client.get(f'/api/sessions/{code}').get_json()['predictor_count'] == 0


def test_join_with_foreign_handle_is_rejected(flask_app, sio_client, client):
    code, (a,) = _create_and_join(client, 2, 'A')
    other_code, _ = _create_and_join(client, 2)
    sio_client.get_received('/ws')

    sio_client.emit('join_session', {'code': other_code, 'handle': a['handle']}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert [p['args'][0]['code'] for p in received if p['name'] == 'session_error'] == ['unknown_participant']
    assert not any(p['name'] == 'joined' for p in received)

    # Nothing was bound, so disconnecting leaves A in place
    sio_client.disconnect(namespace='/ws')
    assert client.get(f'/api/sessions/{code}').get_json()['predictor_count'] == 1


def test_switching_sessions_on_one_socket_releases_first_slot(sio_client, client):
    first, (a,) = _create_and_join(client, 2, 'A')
    second, (b,) = _create_and_join(client, 2, 'B')

    sio_client.emit('join_session', {'code': first, 'handle': a['handle']}, namespace='/ws')
    sio_client.emit('join_session', {'code': second, 'handle': b['handle']}, namespace='/ws')

    assert client.get(f'/api/sessions/{first}').get_json()['predictor_count'] == 0
    assert client.get(f'/api/sessions/{second}').get_json()['predictor_count'] == 1
