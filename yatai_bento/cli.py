"""Thin CLI wrapper for yatai_bento.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
from datetime import datetime
from typing import Annotated, Any, NoReturn

import typer
from rich.console import Console

from yatai_bento import __version__
from yatai_bento.config import get_settings, print_settings_json
from yatai_bento.log import configure_logging

app = typer.Typer(
    name="yatai-bento",
    help="Yatai Bento - register Bento versions and provision image builds",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"yatai-bento version {__version__}")
        raise typer.Exit()


def _print_json(data: Any) -> None:
    console.print(json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True)


def _fail(error: Exception, json_output: bool) -> NoReturn:
    """Report a service error and exit with status 1."""
    code = getattr(error, "code", "error")
    if json_output:
        output: dict[str, Any] = {"code": code, "message": str(error)}
        version_id = getattr(error, "version_id", None)
        if version_id is not None:
            output["version_id"] = version_id
        _print_json(output)
    else:
        console.print(f"[red]{code}: {error}[/red]", soft_wrap=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Yatai Bento - register Bento versions and provision image builds."""
    configure_logging(get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), markup=False, soft_wrap=True)
    else:
        endpoint_display = settings.s3_endpoint_url or "(AWS default)"
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Storage:[/bold]")
        console.print(f"  Database URL:        {settings.db_url}")
        console.print(f"  S3 endpoint:         {endpoint_display}")
        console.print(f"  Object collection:   {settings.object_collection}")
        console.print()
        console.print("[bold]Builds:[/bold]")
        console.print(f"  Image tag prefix:    {settings.image_tag_prefix}")
        console.print(f"  Builder namespace:   {settings.builder_namespace}")
        console.print(f"  Builder image:       {settings.builder_image}")
        console.print(f"  Max name length:     {settings.kube_name_max_length}")
        console.print()
        console.print("[bold]Kubernetes client:[/bold]")
        console.print(f"  QPS:                 {settings.kube_qps}")
        console.print(f"  Burst:               {settings.kube_burst}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")


@app.command()
def naming(
    organization: Annotated[str, typer.Argument(help="Organization name")],
    bento: Annotated[str, typer.Argument(help="Bento name")],
    version: Annotated[str, typer.Argument(help="Bento version")],
    registry: Annotated[
        str | None,
        typer.Option("--registry", "-r", help="Image repository URI"),
    ] = None,
    bucket: Annotated[
        str | None,
        typer.Option("--bucket", "-b", help="Bucket holding the archive"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Print the names derived for a Bento version.

    The image name needs --registry and the build context URI needs --bucket.
    """
    from yatai_bento import naming as names

    settings = get_settings()
    object_name = names.s3_object_name(
        organization, bento, version, settings.object_collection
    )
    output: dict[str, str | None] = {
        "object_name": object_name,
        "context_uri": names.s3_context_uri(bucket, object_name) if bucket else None,
        "image_name": names.image_name(
            registry, organization, bento, version, settings.image_tag_prefix
        )
        if registry
        else None,
        "builder_name": names.image_builder_kube_name(
            organization, bento, version, settings.kube_name_max_length
        ),
    }

    if json_output:
        _print_json(output)
        return

    for key, value in output.items():
        if value is not None:
            console.print(f"{key + ':':<14} {value}", markup=False, soft_wrap=True)


versions_app = typer.Typer(help="Manage Bento versions")
app.add_typer(versions_app, name="versions")


def _print_version(record: Any) -> None:
    console.print(f"  [green]{record.version}[/green] (id {record.id})")
    console.print(f"    Bento: {record.bento_id}")
    console.print(f"    Build status:  {record.build_status}")
    console.print(f"    Upload status: {record.upload_status}")
    if record.upload_finished_reason:
        console.print(f"    Reason: {record.upload_finished_reason}", markup=False)


@versions_app.command("create")
def versions_create(
    bento_id: Annotated[int, typer.Argument(help="Owning Bento ID")],
    version: Annotated[str, typer.Argument(help="Version string")],
    creator_id: Annotated[
        int,
        typer.Option("--creator", "-c", help="ID of the registering user"),
    ] = 0,
    description: Annotated[
        str | None,
        typer.Option("--description", "-d", help="Version description"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Register a Bento version and print its upload URL."""
    from pydantic import ValidationError

    from yatai_bento.db import open_session_factory, session_scope
    from yatai_bento.organizations.service import (
        OrganizationConfigError,
        OrganizationNotFoundError,
    )
    from yatai_bento.storage.gateway import ObjectStoreError
    from yatai_bento.versions.service import (
        BentoNotFoundError,
        BentoVersionExistsError,
        CreateBentoVersionOption,
        UploadUrlError,
        create_version,
        version_to_dict,
    )

    try:
        opt = CreateBentoVersionOption(
            creator_id=creator_id,
            bento_id=bento_id,
            version=version,
            description=description,
        )
    except ValidationError as e:
        console.print("[red]Invalid input:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None

    with session_scope(open_session_factory()) as session:
        try:
            record, url = create_version(session, opt)
        except (
            BentoNotFoundError,
            BentoVersionExistsError,
            OrganizationConfigError,
            OrganizationNotFoundError,
            ObjectStoreError,
            UploadUrlError,
        ) as e:
            _fail(e, json_output)

        if json_output:
            _print_json({"version": version_to_dict(record), "upload_url": url})
        else:
            console.print("[green]✓ Registered version[/green]")
            _print_version(record)
            console.print(f"    Upload URL: {url}", markup=False, soft_wrap=True)


@versions_app.command("show")
def versions_show(
    version_id: Annotated[int, typer.Argument(help="Bento version ID")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show details of a Bento version."""
    from yatai_bento.db import open_session_factory, session_scope
    from yatai_bento.versions.service import (
        BentoVersionNotFoundError,
        get_version,
        version_to_dict,
    )

    with session_scope(open_session_factory()) as session:
        try:
            record = get_version(session, version_id)
        except BentoVersionNotFoundError as e:
            _fail(e, json_output)

        if json_output:
            _print_json(version_to_dict(record))
        else:
            _print_version(record)


@versions_app.command("update")
def versions_update(
    version_id: Annotated[int, typer.Argument(help="Bento version ID")],
    build_status: Annotated[
        str | None,
        typer.Option("--build-status", help="pending, building, success or failed"),
    ] = None,
    upload_status: Annotated[
        str | None,
        typer.Option("--upload-status", help="pending, uploading, success or failed"),
    ] = None,
    reason: Annotated[
        str | None,
        typer.Option("--reason", help="Upload finished reason"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Update the statuses of a Bento version.

    Moving the upload to uploading stamps its start time; moving it to
    success or failed stamps its finish time. Upload success provisions
    the image build.
    """
    from pydantic import ValidationError

    from yatai_bento.builds.provisioner import ProvisioningError
    from yatai_bento.clusters.resolver import ClusterAccessError
    from yatai_bento.db import open_session_factory, session_scope
    from yatai_bento.organizations.service import (
        ClusterNotFoundError,
        OrganizationConfigError,
        OrganizationNotFoundError,
    )
    from yatai_bento.types import UploadStatus
    from yatai_bento.versions.service import (
        BentoNotFoundError,
        BentoVersionNotFoundError,
        InvalidStatusTransitionError,
        UpdateBentoVersionOption,
        get_version,
        update_version,
        version_to_dict,
    )

    fields: dict[str, Any] = {}
    if build_status is not None:
        fields["build_status"] = build_status
    if upload_status is not None:
        fields["upload_status"] = upload_status
        if upload_status == UploadStatus.UPLOADING.value:
            fields["upload_started_at"] = datetime.now()
        elif upload_status in (UploadStatus.SUCCESS.value, UploadStatus.FAILED.value):
            fields["upload_finished_at"] = datetime.now()
    if reason is not None:
        fields["upload_finished_reason"] = reason

    try:
        opt = UpdateBentoVersionOption(**fields)
    except ValidationError as e:
        console.print("[red]Invalid input:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None

    with session_scope(open_session_factory()) as session:
        try:
            record = get_version(session, version_id)
            record, report = update_version(session, record, opt)
        except (
            BentoNotFoundError,
            BentoVersionNotFoundError,
            InvalidStatusTransitionError,
            OrganizationConfigError,
            OrganizationNotFoundError,
            ClusterNotFoundError,
            ClusterAccessError,
            ProvisioningError,
        ) as e:
            _fail(e, json_output)

        if json_output:
            _print_json(
                {
                    "version": version_to_dict(record),
                    "provisioning": report.to_dict() if report else None,
                }
            )
            return

        _print_version(record)
        if report is not None:
            console.print(f"[green]✓ Builder pod submitted: {report.pod_name}[/green]")
            console.print(f"    Image: {report.image_name}", markup=False)
            for result in report.results:
                console.print(f"    {result.step}: {result.outcome.value}")


@versions_app.command("latest")
def versions_latest(
    bento_ids: Annotated[list[int], typer.Argument(help="Bento IDs")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the newest version of each given Bento."""
    from yatai_bento.db import open_session_factory, session_scope
    from yatai_bento.versions.service import list_latest_by_bento_ids, version_to_dict

    with session_scope(open_session_factory()) as session:
        records = list_latest_by_bento_ids(session, bento_ids)

        if json_output:
            _print_json([version_to_dict(r) for r in records])
            return

        if not records:
            console.print("[yellow]No versions found[/yellow]")
            return

        console.print(f"[bold]Found {len(records)} version(s):[/bold]")
        console.print()
        for record in records:
            _print_version(record)
            console.print()


@versions_app.command("upload-url")
def versions_upload_url(
    version_id: Annotated[int, typer.Argument(help="Bento version ID")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Re-issue the upload URL of a version whose upload is still pending."""
    from yatai_bento.db import open_session_factory, session_scope
    from yatai_bento.organizations.service import (
        OrganizationConfigError,
        OrganizationNotFoundError,
    )
    from yatai_bento.storage.gateway import ObjectStoreError
    from yatai_bento.versions.service import (
        BentoNotFoundError,
        BentoVersionNotFoundError,
        UploadNotPendingError,
        get_version,
        issue_upload_url,
    )

    with session_scope(open_session_factory()) as session:
        try:
            record = get_version(session, version_id)
            url = issue_upload_url(session, record)
        except (
            BentoNotFoundError,
            BentoVersionNotFoundError,
            UploadNotPendingError,
            OrganizationConfigError,
            OrganizationNotFoundError,
            ObjectStoreError,
        ) as e:
            _fail(e, json_output)

        if json_output:
            _print_json({"version_id": record.id, "upload_url": url})
        else:
            console.print(url, markup=False, soft_wrap=True)


if __name__ == "__main__":
    app()
