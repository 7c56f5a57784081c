from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Guessing Game Backend is Running'})


@main.route('/api/sessions/<string:session_id>/state', methods=['GET'])
def get_session_state(session_id):
    snapshot = current_app.extensions['session_engine'].snapshot(session_id)
    if snapshot is None:
        return jsonify({'error': 'Session not found'}), 404
    return jsonify(snapshot)
