STREAM_MEDIA_TYPE = "video/mp4"

STREAM_RESPONSE_HEADERS = {
    "content-type": STREAM_MEDIA_TYPE,
    "x-content-type-options": "nosniff",
    "cache-control": "no-cache, no-store",
    "content-disposition": "inline",
    "access-control-allow-origin": "*",
}
