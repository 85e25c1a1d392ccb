"""Tests for versions/service.py module.

Tests the registration and update flows with a mocked object store
gateway and build provisioner.
"""

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import sessionmaker

from yatai_bento.builds.provisioner import BuildProvisioner, ProvisioningReport
from yatai_bento.config import Settings
from yatai_bento.db import Base
from yatai_bento.organizations.models import Cluster, Organization
from yatai_bento.organizations.service import OrganizationConfigError
from yatai_bento.storage.gateway import ObjectStoreError, ObjectStoreGateway
from yatai_bento.types import BuildStatus, StorageConfig, UploadStatus
from yatai_bento.versions.models import Bento, BentoVersion
from yatai_bento.versions.service import (
    BentoNotFoundError,
    BentoVersionExistsError,
    BentoVersionNotFoundError,
    CreateBentoVersionOption,
    InvalidStatusTransitionError,
    UpdateBentoVersionOption,
    UploadNotPendingError,
    UploadUrlError,
    create_version,
    get_image_builder_kube_name,
    get_image_name,
    get_s3_object_name,
    get_version,
    get_version_by_version,
    issue_upload_url,
    list_latest_by_bento_ids,
    update_version,
    version_to_dict,
)

REGISTRY = "123456789012.dkr.ecr.us-west-2.amazonaws.com/bentos"
UPLOAD_URL = "https://acme-bentos.s3.amazonaws.com/bentos/acme/resnet/1.0.0.tar.gz?X-Amz-Signature=abc"

ORG_CONFIG = {
    "aws": {
        "access_key_id": "AKIAEXAMPLE",
        "secret_access_key": "secret",
        "s3": {"bucket_name": "acme-bentos", "region": "us-west-2"},
        "ecr": {"repository_uri": REGISTRY},
    }
}


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory(engine):
    """Create a session factory for testing."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """Create a session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    """Settings with defaults, independent of the environment."""
    return Settings(db_url="sqlite:///:memory:")


@pytest.fixture
def org(session):
    """Create an organization with storage and registry config."""
    o = Organization(name="acme", config=ORG_CONFIG)
    session.add(o)
    session.flush()
    session.add(Cluster(organization_id=o.id, name="default"))
    session.commit()
    return o


@pytest.fixture
def bento(session, org):
    """Create a Bento in the organization."""
    b = Bento(organization_id=org.id, name="resnet")
    session.add(b)
    session.commit()
    return b


@pytest.fixture
def bare_bento(session):
    """Create a Bento whose organization has no configuration."""
    o = Organization(name="bare", config={})
    session.add(o)
    session.flush()
    b = Bento(organization_id=o.id, name="resnet")
    session.add(b)
    session.commit()
    return b


@pytest.fixture
def gateway():
    """Create a mock object store gateway."""
    gw = MagicMock(spec=ObjectStoreGateway)
    gw.ensure_bucket.return_value = False
    gw.presign_upload.return_value = UPLOAD_URL
    return gw


@pytest.fixture
def provisioner():
    """Create a mock build provisioner."""
    p = MagicMock(spec=BuildProvisioner)
    p.provision.side_effect = lambda session, version: ProvisioningReport(
        version_id=version.id,
        namespace="yatai-builders",
        pod_name="yatai-image-builder-acme-resnet-1-0-0",
        context_uri="s3://acme-bentos/bentos/acme/resnet/1.0.0.tar.gz",
        image_name=f"{REGISTRY}:yatai.acme.resnet.1.0.0",
    )
    return p


def _create(session, bento, gateway, settings, version="1.0.0"):
    opt = CreateBentoVersionOption(creator_id=7, bento_id=bento.id, version=version)
    return create_version(session, opt, gateway=gateway, settings=settings)


def _count_versions(session) -> int:
    return session.execute(select(func.count(BentoVersion.id))).scalar_one()


class TestCreateBentoVersionOption:
    """Test registration input validation."""

    def test_rejects_path_separators(self):
        """Version strings must be usable in object keys and image tags."""
        with pytest.raises(ValidationError):
            CreateBentoVersionOption(creator_id=1, bento_id=1, version="1.0/evil")

    def test_rejects_empty_version(self):
        """Empty version strings should be rejected."""
        with pytest.raises(ValidationError):
            CreateBentoVersionOption(creator_id=1, bento_id=1, version="")


class TestCreateVersion:
    """Test create_version function."""

    def test_creates_pending_version(self, session, bento, gateway, settings):
        """A new version should be pending on both axes with an upload URL."""
        version, url = _create(session, bento, gateway, settings)

        assert url == UPLOAD_URL
        assert version.id is not None
        assert version.build_status == "pending"
        assert version.upload_status == "pending"
        assert version.creator_id == 7
        assert version.build_at is not None

    def test_presigns_expected_object(self, session, bento, gateway, settings):
        """The URL should target the version's archive key in the org bucket."""
        _create(session, bento, gateway, settings)

        storage, object_name = gateway.presign_upload.call_args.args
        assert isinstance(storage, StorageConfig)
        assert storage.bucket_name == "acme-bentos"
        assert storage.region == "us-west-2"
        assert object_name == "bentos/acme/resnet/1.0.0.tar.gz"
        gateway.ensure_bucket.assert_called_once_with(storage)

    def test_default_endpoint_applied(self, session, bento, gateway):
        """The configured endpoint should be used when the org sets none."""
        settings = Settings(db_url="sqlite:///:memory:", s3_endpoint_url="http://minio:9000")
        _create(session, bento, gateway, settings)

        storage = gateway.ensure_bucket.call_args.args[0]
        assert storage.endpoint_url == "http://minio:9000"

    def test_duplicate_version_rejected(self, session, bento, gateway, settings):
        """Registering the same version twice should fail and keep one row."""
        _create(session, bento, gateway, settings)

        with pytest.raises(BentoVersionExistsError) as exc_info:
            _create(session, bento, gateway, settings)

        assert exc_info.value.code == "bento_version_exists"
        assert _count_versions(session) == 1

    def test_session_usable_after_duplicate(self, session, bento, gateway, settings):
        """A rejected duplicate should not poison the session."""
        _create(session, bento, gateway, settings)
        with pytest.raises(BentoVersionExistsError):
            _create(session, bento, gateway, settings)

        version, _ = _create(session, bento, gateway, settings, version="1.0.1")
        assert version.version == "1.0.1"

    def test_unknown_bento(self, session, gateway, settings):
        """Registering for a missing Bento should fail without writing."""
        opt = CreateBentoVersionOption(creator_id=1, bento_id=999, version="1")
        with pytest.raises(BentoNotFoundError):
            create_version(session, opt, gateway=gateway, settings=settings)
        assert _count_versions(session) == 0

    def test_missing_storage_config_rolls_back(
        self, session, bare_bento, gateway, settings
    ):
        """Missing org storage config should fail and leave no record."""
        with pytest.raises(OrganizationConfigError) as exc_info:
            _create(session, bare_bento, gateway, settings)

        assert exc_info.value.code == "organization_config_missing"
        assert _count_versions(session) == 0
        gateway.ensure_bucket.assert_not_called()
        gateway.presign_upload.assert_not_called()

    def test_bucket_failure_rolls_back(self, session, bento, gateway, settings):
        """A bucket that cannot be ensured should leave no record."""
        gateway.ensure_bucket.side_effect = ObjectStoreError(
            "denied", operation="create_bucket", bucket_name="acme-bentos"
        )

        with pytest.raises(ObjectStoreError):
            _create(session, bento, gateway, settings)

        assert _count_versions(session) == 0
        gateway.presign_upload.assert_not_called()

    def test_presign_failure_keeps_record(self, session, bento, gateway, settings):
        """A signing failure after commit should report the committed version."""
        gateway.presign_upload.side_effect = ObjectStoreError(
            "signing failed", operation="presign_put_object"
        )

        with pytest.raises(UploadUrlError) as exc_info:
            _create(session, bento, gateway, settings)

        assert exc_info.value.code == "upload_url_failed"
        version = get_version(session, exc_info.value.version_id)
        assert version.upload_status == "pending"

    def test_explicit_build_at(self, session, bento, gateway, settings):
        """A caller-provided build time should be stored."""
        build_at = datetime(2024, 1, 2, 3, 4, 5)
        opt = CreateBentoVersionOption(
            creator_id=1, bento_id=bento.id, version="1", build_at=build_at
        )
        version, _ = create_version(session, opt, gateway=gateway, settings=settings)
        assert version.build_at == build_at


class TestIssueUploadUrl:
    """Test issue_upload_url function."""

    def test_reissues_for_pending(self, session, bento, gateway, settings):
        """A pending version should get a fresh URL for the same object."""
        version, _ = _create(session, bento, gateway, settings)
        gateway.presign_upload.reset_mock()
        gateway.presign_upload.return_value = "https://example.com/fresh"

        url = issue_upload_url(session, version, gateway=gateway, settings=settings)

        assert url == "https://example.com/fresh"
        assert gateway.presign_upload.call_args.args[1] == "bentos/acme/resnet/1.0.0.tar.gz"

    def test_rejects_started_upload(self, session, bento, gateway, settings):
        """Once uploading, no new URL should be issued."""
        version, _ = _create(session, bento, gateway, settings)
        update_version(
            session,
            version,
            UpdateBentoVersionOption(upload_status=UploadStatus.UPLOADING),
            settings=settings,
        )

        with pytest.raises(UploadNotPendingError):
            issue_upload_url(session, version, gateway=gateway, settings=settings)


class TestUpdateVersion:
    """Test update_version function."""

    def test_empty_update_is_noop(
        self, engine, session, bento, gateway, settings, provisioner
    ):
        """An update with no fields should write nothing and provision nothing."""
        version, _ = _create(session, bento, gateway, settings)
        before = version_to_dict(version)
        writes = []

        def record_write(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith(("INSERT", "UPDATE", "DELETE")):
                writes.append(statement)

        event.listen(engine, "before_cursor_execute", record_write)
        try:
            result, report = update_version(
                session, version, UpdateBentoVersionOption(), provisioner=provisioner
            )
        finally:
            event.remove(engine, "before_cursor_execute", record_write)

        assert writes == []

        assert result is version
        assert report is None
        assert version_to_dict(version) == before
        provisioner.provision.assert_not_called()

    def test_none_status_ignored(self, session, bento, gateway, settings, provisioner):
        """Explicitly null statuses should not be written."""
        version, _ = _create(session, bento, gateway, settings)

        update_version(
            session,
            version,
            UpdateBentoVersionOption(upload_status=None, build_status=None),
            provisioner=provisioner,
        )

        assert version.upload_status == "pending"
        assert version.build_status == "pending"

    def test_uploading_sets_fields(self, session, bento, gateway, settings, provisioner):
        """Setting uploading should persist status and start time only."""
        version, _ = _create(session, bento, gateway, settings)
        started = datetime(2024, 5, 1, 12, 0, 0)

        _, report = update_version(
            session,
            version,
            UpdateBentoVersionOption(
                upload_status=UploadStatus.UPLOADING, upload_started_at=started
            ),
            provisioner=provisioner,
        )

        assert report is None
        assert version.upload_status == "uploading"
        assert version.upload_started_at == started
        assert version.upload_finished_at is None
        provisioner.provision.assert_not_called()

    def test_changes_are_persisted(
        self, session, session_factory, bento, gateway, settings, provisioner
    ):
        """Changes should be visible to other sessions after the call."""
        version, _ = _create(session, bento, gateway, settings)

        update_version(
            session,
            version,
            UpdateBentoVersionOption(build_status="building"),
            provisioner=provisioner,
        )

        with session_factory() as other:
            assert other.get(BentoVersion, version.id).build_status == "building"

    def test_upload_success_provisions_once(
        self, session, bento, gateway, settings, provisioner
    ):
        """Upload success should provision the build exactly once."""
        version, _ = _create(session, bento, gateway, settings)

        _, report = update_version(
            session,
            version,
            UpdateBentoVersionOption(
                upload_status=UploadStatus.SUCCESS,
                upload_finished_at=datetime(2024, 5, 1, 12, 5, 0),
                upload_finished_reason="ok",
            ),
            provisioner=provisioner,
        )

        provisioner.provision.assert_called_once_with(session, version)
        assert report is not None
        assert report.version_id == version.id
        assert version.upload_status == "success"
        assert version.upload_finished_reason == "ok"

    def test_repeated_success_provisions_again(
        self, session, bento, gateway, settings, provisioner
    ):
        """Re-applying success should be accepted and provision again."""
        version, _ = _create(session, bento, gateway, settings)
        opt = UpdateBentoVersionOption(upload_status=UploadStatus.SUCCESS)

        update_version(session, version, opt, provisioner=provisioner)
        update_version(session, version, opt, provisioner=provisioner)

        assert provisioner.provision.call_count == 2

    def test_build_status_after_upload_success_does_not_provision(
        self, session, bento, gateway, settings, provisioner
    ):
        """Only updates that set the upload status to success should provision."""
        version, _ = _create(session, bento, gateway, settings)
        update_version(
            session,
            version,
            UpdateBentoVersionOption(upload_status=UploadStatus.SUCCESS),
            provisioner=provisioner,
        )

        _, report = update_version(
            session,
            version,
            UpdateBentoVersionOption(build_status=BuildStatus.BUILDING),
            provisioner=provisioner,
        )

        assert report is None
        assert version.is_uploaded()
        assert provisioner.provision.call_count == 1

    def test_invalid_transition_writes_nothing(
        self, session, session_factory, bento, gateway, settings, provisioner
    ):
        """An illegal move should be rejected before any write."""
        version, _ = _create(session, bento, gateway, settings)
        update_version(
            session,
            version,
            UpdateBentoVersionOption(upload_status="failed"),
            provisioner=provisioner,
        )

        with pytest.raises(InvalidStatusTransitionError):
            update_version(
                session,
                version,
                UpdateBentoVersionOption(
                    upload_status="success", upload_finished_reason="late"
                ),
                provisioner=provisioner,
            )

        assert version.upload_status == "failed"
        with session_factory() as other:
            stored = other.get(BentoVersion, version.id)
            assert stored.upload_status == "failed"
            assert stored.upload_finished_reason is None
        provisioner.provision.assert_not_called()

    def test_missing_config_after_upload_success(
        self, session, session_factory, bare_bento, settings
    ):
        """Upload success is kept even when provisioning finds no config."""
        version = BentoVersion(bento_id=bare_bento.id, creator_id=1, version="1.0.0")
        session.add(version)
        session.commit()

        api = MagicMock()
        resolver = MagicMock()
        provisioner = BuildProvisioner(
            resolver, settings=settings, core_api_factory=lambda client: api
        )

        with pytest.raises(OrganizationConfigError):
            update_version(
                session,
                version,
                UpdateBentoVersionOption(upload_status=UploadStatus.SUCCESS),
                provisioner=provisioner,
            )

        with session_factory() as other:
            assert other.get(BentoVersion, version.id).upload_status == "success"
        resolver.resolve.assert_not_called()
        assert api.method_calls == []

    def test_deleted_row(self, session, bento, gateway, settings, provisioner):
        """Updating a row that no longer exists should raise not found."""
        version, _ = _create(session, bento, gateway, settings)
        session.delete(version)
        session.commit()

        with pytest.raises(BentoVersionNotFoundError):
            update_version(
                session,
                version,
                UpdateBentoVersionOption(build_status="building"),
                provisioner=provisioner,
            )
        assert version.build_status == "pending"


class TestLoaders:
    """Test lookup functions."""

    def test_get_version_not_found(self, session):
        """Missing IDs should raise BentoVersionNotFoundError."""
        with pytest.raises(BentoVersionNotFoundError) as exc_info:
            get_version(session, 42)
        assert exc_info.value.code == "bento_version_not_found"

    def test_get_version_by_version(self, session, bento, gateway, settings):
        """Versions should be retrievable by their string."""
        created, _ = _create(session, bento, gateway, settings)
        assert get_version_by_version(session, bento.id, "1.0.0").id == created.id

        with pytest.raises(BentoVersionNotFoundError):
            get_version_by_version(session, bento.id, "9.9.9")

    def test_list_latest_by_bento_ids(self, session, org, bento, gateway, settings):
        """Each Bento should map to its highest-ID version."""
        other = Bento(organization_id=org.id, name="bert")
        empty = Bento(organization_id=org.id, name="unused")
        session.add_all([other, empty])
        session.commit()

        _create(session, bento, gateway, settings, version="1")
        newest, _ = _create(session, bento, gateway, settings, version="0.9")
        other_version, _ = _create(session, other, gateway, settings, version="3")

        latest = list_latest_by_bento_ids(session, [bento.id, other.id, empty.id])

        assert [v.id for v in latest] == [newest.id, other_version.id]

    def test_list_latest_empty_input(self, session):
        """No IDs should yield no versions."""
        assert list_latest_by_bento_ids(session, []) == []


class TestNameHelpers:
    """Test name helpers bound to stored records."""

    def test_names_for_version(self, session, bento, gateway, settings):
        """Helpers should derive names from the owning org and Bento."""
        version, _ = _create(session, bento, gateway, settings)

        assert get_s3_object_name(session, version, settings) == (
            "bentos/acme/resnet/1.0.0.tar.gz"
        )
        assert get_image_name(session, version, settings) == (
            f"{REGISTRY}:yatai.acme.resnet.1.0.0"
        )
        assert get_image_builder_kube_name(session, version, settings) == (
            "yatai-image-builder-acme-resnet-1-0-0"
        )

    def test_image_name_requires_registry(self, session, bare_bento, settings):
        """Image names need the organization's registry."""
        version = BentoVersion(bento_id=bare_bento.id, creator_id=1, version="1")
        session.add(version)
        session.commit()

        with pytest.raises(OrganizationConfigError):
            get_image_name(session, version, settings)
