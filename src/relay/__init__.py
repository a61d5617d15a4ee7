"""Per-call audio relay between Twilio Media Streams and an ElevenLabs agent.

One CallSessionHandler owns one CallSession; sessions share nothing.
"""
