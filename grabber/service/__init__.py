"""
Service layer for grabbing memes.

This package contains the download strategies and the file fixing pipeline,
independent of any Django models. These functions are used by:
- The CLI management commands (management/commands/fetch.py, fix.py)
- Bot front ends, through download_tmp_file() in transcode_service.py
"""
