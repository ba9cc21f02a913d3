from typing import List

from blimp.logger import get_console
from blimp.src.appstore.services import AppQueryService, BetaService

console = get_console()


class Land:
    """TestFlight distribution of a processed build"""

    def __init__(self, apps: AppQueryService, beta: BetaService):
        self.apps = apps
        self.beta = beta

    def engage(self, bundle_id: str, build_id: str, beta_groups: List[str]) -> None:
        """Assign beta groups to the build. Groups are matched by name within the app"""
        app_id = self.apps.get_app_id(bundle_id)
        console.print(f"[blue]Assigning build {build_id} to beta groups:[/] {', '.join(beta_groups)}")
        self.beta.set_beta_groups(app_id, build_id, beta_groups)

    def report(self, localization_ids: List[str], changelog: str) -> None:
        """Set the "What to Test" text of the build"""
        if not localization_ids:
            console.print("[yellow]Build has no beta localizations, changelog not set")
            return
        self.beta.set_changelog(localization_ids, changelog)

    def confirm(self, build_id: str) -> None:
        """Submit the build for TestFlight external review"""
        console.print(f"[blue]Submitting build {build_id} for beta review...")
        self.beta.send_to_review(build_id)
