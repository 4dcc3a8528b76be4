"""CLI tests: argument parsing and step selection."""

from uuid import uuid4

import pytest

from bedtime.cli.process_jobs import parse_args, print_summary, run_process
from bedtime.models.book_job import JobStatus


class TestParseArgs:
    def test_defaults(self):
        args = parse_args(["process"])

        assert args.command == "process"
        assert args.job_id is None
        assert args.drain is False
        assert args.max_steps is None
        assert args.verbose is False

    def test_job_id_is_parsed_as_uuid(self):
        job_id = uuid4()

        args = parse_args(["process", "--job-id", str(job_id), "--drain", "--max-steps", "4", "-v"])

        assert args.job_id == job_id
        assert args.drain is True
        assert args.max_steps == 4
        assert args.verbose is True

    def test_invalid_job_id_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["process", "--job-id", "not-a-uuid"])

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            parse_args([])


@pytest.mark.asyncio
async def test_single_step(processor, create_book):
    await create_book()

    results = await run_process(processor, parse_args(["process"]))

    assert len(results) == 1
    assert results[0].job_status == JobStatus.QUEUED


@pytest.mark.asyncio
async def test_single_step_on_idle_queue(processor):
    assert await run_process(processor, parse_args(["process"])) == []


@pytest.mark.asyncio
async def test_drain_specific_job(processor, create_book):
    created = await create_book()
    other = await create_book(child_name="Leo")

    results = await run_process(processor, parse_args(["process", "--job-id", str(created.job_id), "--drain"]))

    assert len(results) == 4
    assert {r.job_id for r in results} == {created.job_id}
    assert other.job_id not in {r.job_id for r in results}


@pytest.mark.asyncio
async def test_drain_queue_with_max_steps(processor, create_book, capsys):
    await create_book()

    results = await run_process(processor, parse_args(["process", "--drain", "--max-steps", "3"]))
    print_summary(results)

    assert len(results) == 3
    output = capsys.readouterr().out
    assert "Book Job Processing Summary" in output
    assert "step=story_text" in output
