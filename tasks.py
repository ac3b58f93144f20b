from invoke import task


@task
def lint(c):
    c.run("ruff check .")


@task
def format_check(c):
    c.run("ruff format --check .")


@task
def test(c):
    c.run("pytest")


@task
def rebuild(c, database="sqlite:///poa_scoring.db"):
    c.run(f"poa-scoring rebuild --database {database}")


@task
def ci(c):
    lint(c)
    format_check(c)
    test(c)
