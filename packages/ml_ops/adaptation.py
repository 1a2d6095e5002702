# packages/ml_ops/adaptation.py

from typing import List, Optional, Sequence

from packages.frames.frame import Frame
from packages.frames.vec import Vec
from packages.ml_ops.exceptions import SchemaIncompatible


def adapt_domain(
    vec: Vec, name: str, train_domain: Sequence[str]
) -> Vec:
    """
    Re-encodes a categorical Vec against the training domain.
    Training levels keep their indices; levels only seen in `vec` are
    numbered after them, so the result's domain always starts with
    `train_domain`.
    """
    train_index = {level: i for i, level in enumerate(train_domain)}
    domain = list(train_domain)
    code_map = []
    shared = 0
    for level in vec.domain:
        if level in train_index:
            code_map.append(train_index[level])
            shared += 1
        else:
            code_map.append(len(domain))
            domain.append(level)

    if shared == 0:
        raise SchemaIncompatible(
            f"Validation column {name} has no levels in common with the training "
            f"levels {list(train_domain)}: {vec.domain}",
            [name],
        )
    return vec.remap(code_map, domain)


def adapt_test_for_train(
    names: Sequence[str],
    domains: Sequence[Optional[Sequence[str]]],
    test: Optional[Frame],
    missing: float,
    expensive: bool,
) -> List[str]:
    """
    Adapt a test/validation Frame to the column layout a model was trained on.

    After a successful adaptation `test` has exactly the training columns in
    training order, and every categorical column is encoded with the training
    levels as a prefix of its domain. Adaptation:

    - drops columns only present in `test`;
    - fills training columns absent from `test` with constant `missing`
      columns (a warning each);
    - re-numbers categorical levels to match training, appending unseen
      levels after the training ones (a warning per column);
    - raises SchemaIncompatible when nothing matches, when a categorical
      column shares no level with training, or when a column is categorical
      on one side and numeric on the other.

    With `expensive=False` nothing new is materialised: the warnings are
    produced but `test` is only restructured if no work was needed.
    Vecs created here belong to the caller; Vecs already in `test` are never
    removed.

    Returns:
        List[str]: warnings; empty when the frame was already compatible.
    """
    if test is None:
        return []

    # Fast path cutout: already compatible
    test_domains = test.domains()
    if names is test.names and domains is test_domains:
        return []
    if list(names) == test.names and _domains_equal(domains, test_domains):
        return []

    msgs: List[str] = []
    created: List[Vec] = []
    adapted: List[Optional[Vec]] = [None] * len(names)
    mismatched: List[str] = []
    good = 0  # Columns resolved for the restructure
    found = 0  # Training columns present in `test`

    try:
        for i, name in enumerate(names):
            vec = test.vec(name)
            train_domain = domains[i]

            # 1. Training column absent from the scored frame
            if vec is None:
                msgs.append(f"Validation set is missing training column {name}")
                if expensive:
                    vec = Vec.make_con(missing, test.num_rows, train_domain)
                    created.append(vec)
                    good += 1
                adapted[i] = vec
                continue

            found += 1

            # 2. Model expects a categorical column
            if train_domain is not None:
                if not vec.is_categorical:
                    mismatched.append(name)
                    continue
                if vec.domain is train_domain or vec.domain == list(train_domain):
                    good += 1
                else:
                    evec = adapt_domain(vec, name, train_domain)
                    if len(evec.domain) > len(train_domain):
                        unseen = evec.domain[len(train_domain):]
                        msgs.append(
                            f"Validation column {name} has levels not trained on: {unseen}"
                        )
                    if expensive:
                        created.append(evec)
                        vec = evec
                        good += 1
                    else:
                        evec.remove()  # No leaking if not-expensive
                        vec = None

            # 3. Model expects a numeric column
            elif vec.is_categorical:
                mismatched.append(name)
                continue
            else:
                good += 1  # Assumed compatible; not checking e.g. text vs UUID

            adapted[i] = vec

        if mismatched:
            raise SchemaIncompatible(
                f"Validation set has columns whose type differs from training "
                f"(categorical vs real-valued): {mismatched}",
                mismatched,
            )
        if found == 0:
            raise SchemaIncompatible(
                "Validation set has no columns in common with the training set",
                list(names),
            )
    except Exception:
        _release(created)
        raise

    # Only update if got something for all columns
    if good == len(names):
        test.restructure(list(names), adapted)
    else:
        _release(created)
    return msgs


def _domains_equal(a, b) -> bool:
    if len(a) != len(b):
        return False
    return all(
        (x is None and y is None)
        or (x is not None and y is not None and list(x) == list(y))
        for x, y in zip(a, b)
    )


def _release(vecs: List[Vec]):
    for vec in vecs:
        vec.remove()


def release_transients(adapted: Frame, original: Frame):
    """
    Removes the Vecs of an adapted copy that the original frame does not own.
    """
    for vec in adapted.vecs():
        if original.find(vec) == -1:
            vec.remove()
