from __future__ import annotations

from typing import Iterable

from reachout.models import Contact, Interaction


class InteractionCollection:
    """In-memory view of the active interactions and their contacts.

    The reminder engine reads from here; the deletion manager removes items
    from it and puts them back on undo or revert.
    """

    def __init__(
        self,
        interactions: Iterable[Interaction] = (),
        contacts: Iterable[Contact] = (),
    ) -> None:
        self._interactions: dict[int, Interaction] = {}
        self._contacts: dict[int, Contact] = {}
        self.replace_all(interactions, contacts)

    @classmethod
    def from_store(cls, store) -> "InteractionCollection":
        return cls(store.list_interactions(), store.list_contacts())

    def replace_all(self, interactions: Iterable[Interaction], contacts: Iterable[Contact]) -> None:
        self._interactions = {i.id: i for i in interactions}
        self._contacts = {c.id: c for c in contacts}

    def refresh(self, store, hidden: Iterable[int] = ()) -> None:
        """Reload from the store, keeping ``hidden`` ids out of view."""
        hidden = set(hidden)
        self.replace_all(
            (i for i in store.list_interactions() if i.id not in hidden),
            store.list_contacts(),
        )

    def __len__(self) -> int:
        return len(self._interactions)

    def __contains__(self, interaction_id: int) -> bool:
        return interaction_id in self._interactions

    def interactions(self) -> list[Interaction]:
        return list(self._interactions.values())

    def contacts(self) -> list[Contact]:
        return list(self._contacts.values())

    def get(self, interaction_id: int) -> Interaction | None:
        return self._interactions.get(interaction_id)

    def contact(self, contact_id: int) -> Contact | None:
        return self._contacts.get(contact_id)

    def add(self, interaction: Interaction) -> None:
        self._interactions[interaction.id] = interaction

    def add_contact(self, contact: Contact) -> None:
        self._contacts[contact.id] = contact

    def remove(self, interaction_id: int) -> Interaction | None:
        return self._interactions.pop(interaction_id, None)
