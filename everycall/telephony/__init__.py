"""
Telephony edge: webhook verification, envelope decoding, number
normalization, tenant routing of inbound calls and the Call Control
command client.
"""
