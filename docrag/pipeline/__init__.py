"""Background processing: the ingestion worker pool and status tracker."""
