"""Real-time relay: sessions, rooms, event dispatch and the WebSocket route."""
