"""
FastAPI service for the Canvas audio recording LTI tool.

The application object lives in ``audio_api.app``; it is not imported here
so that settings and LTI helpers can be used without building the app.
"""
