"""Database schema DDL for content jobs."""

CONTENT_JOBS_TABLE_DDL = """
CREATE TABLE content_jobs (
  id                 UUID PRIMARY KEY,
  topic              TEXT NOT NULL
                     CHECK (length(btrim(topic)) > 0 AND length(topic) <= 500),

  status             TEXT NOT NULL DEFAULT 'pending'
                     CHECK (status IN ('pending', 'processing', 'completed', 'error')),
  options            JSONB NOT NULL DEFAULT '{}',
  site_id            TEXT,

  retry_count        INT NOT NULL DEFAULT 0 CHECK (retry_count BETWEEN 0 AND 3),
  claimed_at         TIMESTAMPTZ,

  draft              JSONB,
  generated_title    TEXT,
  generated_content  TEXT,
  generated_excerpt  TEXT,
  published_post_id  TEXT,
  published_url      TEXT,
  last_error         TEXT,

  created_at         TIMESTAMPTZ NOT NULL DEFAULT now(),
  updated_at         TIMESTAMPTZ NOT NULL DEFAULT now(),
  completed_at       TIMESTAMPTZ,

  CONSTRAINT content_jobs_claimed_at_check
    CHECK ((status = 'processing') = (claimed_at IS NOT NULL)),
  CONSTRAINT content_jobs_generated_pair_check
    CHECK ((generated_title IS NULL) = (generated_content IS NULL)),
  CONSTRAINT content_jobs_completed_result_check
    CHECK (status <> 'completed' OR (
      generated_title IS NOT NULL
      AND generated_content IS NOT NULL
      AND published_post_id IS NOT NULL
    )),
  CONSTRAINT content_jobs_result_only_when_completed_check
    CHECK (status = 'completed' OR (
      generated_title IS NULL
      AND generated_content IS NULL
      AND generated_excerpt IS NULL
      AND published_post_id IS NULL
      AND published_url IS NULL
    )),
  CONSTRAINT content_jobs_last_error_check
    CHECK ((status = 'error') = (last_error IS NOT NULL))
);

-- Claim order: oldest pending first, tie-break by id
CREATE INDEX idx_content_jobs_pending
ON content_jobs (created_at, id)
WHERE status = 'pending';

-- Index for the sweeper to find stale claims efficiently
CREATE INDEX idx_content_jobs_processing_claimed_at
ON content_jobs (claimed_at)
WHERE status = 'processing';

CREATE INDEX idx_content_jobs_status_created_at
ON content_jobs (status, created_at);
"""

CONTENT_JOB_RUNS_TABLE_DDL = """
CREATE TABLE content_job_runs (
  id             BIGSERIAL PRIMARY KEY,
  job_id         UUID NOT NULL REFERENCES content_jobs (id) ON DELETE CASCADE,
  attempt        INT NOT NULL,
  outcome        TEXT NOT NULL
                 CHECK (outcome IN ('completed', 'retrying', 'failed', 'stale')),
  error          TEXT,
  generation_ms  INT,
  publish_ms     INT,
  total_ms       INT,
  created_at     TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX idx_content_job_runs_job_id
ON content_job_runs (job_id, created_at);
"""
