"""Media relay between Twilio Media Streams and the OpenAI Realtime API.

One `SessionBridge` per call owns a telephony leg (the WebSocket Twilio opens
to us) and a gateway leg (the WebSocket we open to the realtime gateway).
"""
