class MappingError(Exception):
    pass


class MappingUnresolvedError(MappingError):
    def __init__(
        self,
        *,
        program_id: int,
        tier_id: str | None,
        platform_id: str | None,
        purchase_type: str,
    ) -> None:
        super().__init__(
            f"No product mapping for program={program_id} tier={tier_id} "
            f"platform={platform_id} variant={purchase_type}"
        )
        self.program_id = program_id
        self.tier_id = tier_id
        self.platform_id = platform_id
        self.purchase_type = purchase_type
