"""MOTD Responder: answers Minecraft server-list pings without a game server."""

__version__ = "1.0.0"
