from prometheus_client import Counter, start_http_server

# Labels are kept low-cardinality: never label by file id or upload id.
PARTS_COMMITTED = Counter(
    "tus_s3_parts_committed_total",
    "Multipart parts uploaded and recorded in upload state",
)

BYTES_COMMITTED = Counter(
    "tus_s3_bytes_committed_total",
    "Bytes durably committed as multipart parts",
)

UPLOADS_FINALIZED = Counter(
    "tus_s3_uploads_finalized_total",
    "Multipart uploads assembled into a single object",
)

MULTIPART_ABORTS = Counter(
    "tus_s3_multipart_aborts_total",
    "Multipart uploads aborted",
    ["reason"],
)

CORRUPT_RECORDS_SKIPPED = Counter(
    "tus_s3_corrupt_records_skipped_total",
    "Upload state records skipped during enumeration because they failed to parse",
)

EXPIRED_UPLOADS_REMOVED = Counter(
    "tus_s3_expired_uploads_removed_total",
    "Incomplete uploads removed after their expiration passed",
)


def serve_metrics(port: int) -> None:
    """Expose the default registry on ``port`` for scraping."""
    start_http_server(port)
