"""Core domain for the Canvas audio recording LTI tool."""
