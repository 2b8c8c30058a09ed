import logging

from metakernel._metakernel import MetaKernelApp

from .kernel import ClojureKernel


def main():
    """
    Launches the Clojure kernel.

    MetaKernelApp rather than IPKernelApp so `clojure-kernel install`
    writes the kernelspec (ipython/ipykernel#196).
    """
    logging.basicConfig(level=logging.WARNING)
    MetaKernelApp.launch_instance(kernel_class=ClojureKernel)


if __name__ == '__main__':
    main()
