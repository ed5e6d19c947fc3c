"""Messaging app initialization.

The messaging app lets paired users exchange text, image and voice
messages, gated by a communication relation, and keeps only the most
recent messages of every conversation.
"""
