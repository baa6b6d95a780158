"""
Speech services: remote speaker recognition, speech-to-text and sentiment
clients, plus the enrollment and streaming recognition workflows.
"""
