from foresight import create_app, socketio, start_reaper

app = create_app()

if __name__ == '__main__':
    # Only the serving process sweeps inactive predictors
    start_reaper(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
