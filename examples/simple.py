"""corelay examples.

Run: python examples/simple.py
"""

import corelay


def state_passing():
    """Example 1: Passing state back and forth."""
    print("\n" + "=" * 50)
    print("EXAMPLE 1: STATE PASSING")
    print("=" * 50)

    def body(state0):
        print(f"  body got {state0}")
        state1 = corelay.yield_(state0 + 1)
        print(f"  body got {state1}")
        state2 = corelay.yield_(state1 + 1)
        print(f"  body got {state2}")
        return state2 + 1

    handle = corelay.start(body)

    # Alive until the body returns
    print(corelay.resume(handle, 0))
    print(corelay.resume(handle, 1))
    print(corelay.resume(handle, 2))
    print(f"Dead: {corelay.is_dead(handle)}")


def failing_body():
    """Example 2: A body that throws."""
    print("\n" + "=" * 50)
    print("EXAMPLE 2: FAILING BODY")
    print("=" * 50)

    def bad():
        corelay.yield_()
        corelay.throw("some_throw_reason")

    handle = corelay.start(bad)

    print(corelay.resume(handle))
    status, info = corelay.resume(handle)
    print(f"Status: {status.value}, kind: {info.kind.value}, payload: {info.payload!r}")


def generator_and_scope():
    """Example 3: Wrapped generator owned by a scope."""
    print("\n" + "=" * 50)
    print("EXAMPLE 3: WRAP AND OWNER SCOPE")
    print("=" * 50)

    def fibonacci():
        a, b = 0, 1
        while True:
            corelay.yield_(a)
            a, b = b, a + b

    with corelay.owner_scope() as scope:
        next_fib = corelay.wrap(fibonacci)
        print([next_fib().value for _ in range(10)])

    # The worker notices the closed scope at its wait point
    print(f"Scope closed: {scope.is_done()}")


def main():
    corelay.configure_logging(level="DEBUG")

    state_passing()
    failing_body()
    generator_and_scope()


if __name__ == "__main__":
    main()
