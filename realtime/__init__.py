"""
Realtime WebSocket app.

This app contains:
- SessionRegistry / SelectionController / BroadcastRelay (the classroom core)
- Channels consumers for ws/code/ (students) and ws/teach/ (teacher view)
- Roster and logout HTTP views
"""
