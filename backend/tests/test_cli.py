# Overview: Pytest coverage for the provisioning CLI.

from courier.models import Branch, Driver, SequenceCounter


class TestSequenceCommands:
    def test_provision_all_kinds(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['sequences', 'provision', '--tenant', 'acme-cli'])
        assert result.exit_code == 0, result.output
        assert "TRACKING: next value GT100001" in result.output
        assert "MANIFEST: next value MAN1" in result.output
        assert db_session.query(SequenceCounter).filter_by(tenant_key='acme-cli').count() == 2

    def test_provision_twice_warns(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=['sequences', 'provision', '--tenant', 'acme-cli'])
        result = runner.invoke(args=['sequences', 'provision', '--tenant', 'acme-cli'])
        assert result.exit_code == 0
        assert "already exists" in result.output

    def test_prefix_requires_kind(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['sequences', 'provision', '--tenant', 'acme-cli', '--prefix', 'AC'])
        assert result.exit_code != 0

    def test_set_backwards_fails(self, app, db_session, counters):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['sequences', 'set', '--tenant', 'default', '--kind', 'tracking', '--next-value', '5'])
        assert result.exit_code == 1
        assert "cannot move backwards" in result.output


class TestDirectoryCommands:
    def test_add_branch_and_driver(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['directory', 'add-branch', '--name', 'Erbil', '--city', 'Erbil'])
        assert result.exit_code == 0, result.output
        branch = db_session.query(Branch).filter_by(name='Erbil').one()

        result = runner.invoke(args=[
            'directory', 'add-driver', '--id', 'DRV-7', '--name', 'Zaid', '--branch-id', str(branch.id),
        ])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=['directory', 'set-active', 'driver', 'DRV-7', '--inactive'])
        assert result.exit_code == 0
        assert db_session.get(Driver, 'DRV-7').is_active is False

    def test_duplicate_branch(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=['directory', 'add-branch', '--name', 'Erbil', '--city', 'Erbil'])
        result = runner.invoke(args=['directory', 'add-branch', '--name', 'Erbil', '--city', 'Erbil'])
        assert result.exit_code == 1
        assert "already exists" in result.output
