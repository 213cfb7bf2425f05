"""
Media remuxer package.

Decides how a remote resource is turned into a browser-playable fMP4
stream and runs that decision:

- codec_utils: Codec family detection for passthrough decisions
- format_selector: Quality-tier video/audio format selection
- transcode_planner: Passthrough vs re-encode planning and ffmpeg arguments
- transcode_pipeline: Live ffmpeg process orchestration
"""
