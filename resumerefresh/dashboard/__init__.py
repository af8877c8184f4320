"""
Dashboard Package - HTTP API and hosted resume form
"""
